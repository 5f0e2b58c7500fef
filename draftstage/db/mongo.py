"""MongoDB connection setup using Motor async driver."""

import os

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorDatabase,
    AsyncIOMotorGridFSBucket,
)

# Configuration from environment variables with defaults
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "draftstage")

# Global client instance
_client: AsyncIOMotorClient | None = None


async def get_database() -> AsyncIOMotorDatabase:
    """Get the database instance, creating client if needed."""
    global _client
    if _client is None:
        # Fail fast if MongoDB is unavailable
        _client = AsyncIOMotorClient(
            MONGODB_URL,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
        )
    return _client[DATABASE_NAME]


async def get_gridfs_bucket(bucket_name: str) -> AsyncIOMotorGridFSBucket:
    """Get a GridFS bucket on the stage database."""
    db = await get_database()
    return AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name)


async def close_database() -> None:
    """Close the database connection."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def set_client(client: AsyncIOMotorClient | None) -> None:
    """Set the client instance (for testing)."""
    global _client
    _client = client
