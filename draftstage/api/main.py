"""FastAPI application setup."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from draftstage import __version__
from draftstage.api.response import error_response, stage_error_response
from draftstage.api.routes import assets, downloads, drafts, generation, health, history, ingest
from draftstage.db.mongo import close_database
from draftstage.errors import (
    AbortedError,
    DownloadResolutionError,
    ProviderError,
    StageError,
    ValidationError,
)
from draftstage.services.workspace import get_registry, set_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    yield
    # Shutdown: stop polling, flush stage state, release clients
    await get_registry().close_all()
    set_registry(None)
    await close_database()


app = FastAPI(
    title="Draft Stage API",
    description="Draft generation, curation and snapshot history for text, image and video content",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle rejected input (including invalid status transitions)."""
    return JSONResponse(status_code=400, content=stage_error_response(exc))


@app.exception_handler(DownloadResolutionError)
async def download_error_handler(request: Request, exc: DownloadResolutionError) -> JSONResponse:
    """Handle unresolvable downloads."""
    return JSONResponse(status_code=404, content=stage_error_response(exc))


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    """Handle provider failures that escaped draft state."""
    logger.error(f"Provider error reached the API: {exc}")
    return JSONResponse(
        status_code=503,
        content=error_response(exc.code, "Generation provider is temporarily unavailable. Please try again."),
    )


@app.exception_handler(AbortedError)
async def aborted_handler(request: Request, exc: AbortedError) -> JSONResponse:
    """Handle user cancellation."""
    return JSONResponse(status_code=409, content=stage_error_response(exc))


@app.exception_handler(StageError)
async def stage_error_handler(request: Request, exc: StageError) -> JSONResponse:
    """Handle any other stage error."""
    logger.error(f"Unhandled stage error: {exc}")
    return JSONResponse(status_code=500, content=stage_error_response(exc))


@app.exception_handler(ServerSelectionTimeoutError)
async def mongo_timeout_handler(request: Request, exc: ServerSelectionTimeoutError) -> JSONResponse:
    """Handle MongoDB connection timeout."""
    return JSONResponse(
        status_code=503,
        content=error_response("DATABASE_UNAVAILABLE", "Database is not available. Please try again later."),
    )


@app.exception_handler(ConnectionFailure)
async def mongo_connection_handler(request: Request, exc: ConnectionFailure) -> JSONResponse:
    """Handle MongoDB connection failure."""
    return JSONResponse(
        status_code=503,
        content=error_response("DATABASE_UNAVAILABLE", "Database connection failed. Please try again later."),
    )


# Register routes
app.include_router(health.router)
app.include_router(drafts.router)
app.include_router(downloads.router)
app.include_router(ingest.router)
app.include_router(generation.router)
app.include_router(history.router)
app.include_router(assets.router)
