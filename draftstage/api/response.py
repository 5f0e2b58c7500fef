"""Response envelope helpers for consistent API responses."""

from typing import Any

from pydantic import BaseModel

from draftstage.errors import StageError


class ErrorDetail(BaseModel):
    """Error detail structure."""

    code: str
    message: str


class ApiResponse(BaseModel):
    """Standard API response envelope."""

    data: Any | None = None
    error: ErrorDetail | None = None


def success_response(data: Any) -> dict[str, Any]:
    """Create a success response envelope.

    Pydantic models are dumped in JSON mode so enums surface as their values.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    return {"data": data, "error": None}


def error_response(code: str, message: str) -> dict[str, Any]:
    """Create an error response envelope."""
    return ApiResponse(error=ErrorDetail(code=code, message=message)).model_dump()


def stage_error_response(exc: StageError) -> dict[str, Any]:
    """Envelope for a stage exception, using its code."""
    return error_response(exc.code, exc.message)
