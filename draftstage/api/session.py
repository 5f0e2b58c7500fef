"""Request-scoped access to a session's workspace."""

from draftstage.services.workspace import Workspace, get_registry


async def get_workspace(session_id: str) -> Workspace:
    """FastAPI dependency: the workspace of the ``session_id`` path parameter."""
    return await get_registry().get(session_id)
