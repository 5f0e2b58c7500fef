"""Health check endpoint."""

from fastapi import APIRouter

from draftstage import __version__
from draftstage.api.response import success_response
from draftstage.services.workspace import get_registry

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> dict:
    """Return system health status and the number of open sessions."""
    return success_response(
        {
            "status": "ok",
            "version": __version__,
            "sessions": len(get_registry().sessions()),
        }
    )
