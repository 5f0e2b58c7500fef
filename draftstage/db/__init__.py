"""Database access (MongoDB via Motor)."""
