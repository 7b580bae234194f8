"""
Response envelope helpers.

Every endpoint answers with {"success": true, "data": ..., "message": ...}
or {"success": false, "error": {"message", "code", "details", "errors"}}.
Paginated lists add a top-level "pagination" block.

Example:
    @router.post("/login")
    async def login(body: LoginRequest):
        result = await auth_pipelines.login_pipeline(...)
        return success_response(result, message="Login successful")
"""

from typing import Any, Dict, Optional


def success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """Success envelope; ``data`` and ``message`` are omitted when empty."""
    response: Dict[str, Any] = {"success": True}
    if data is not None:
        response["data"] = data
    if message:
        response["message"] = message
    return response


def error_response(
    message: str,
    code: Optional[str] = None,
    details: Optional[Any] = None,
    errors: Optional[list] = None,
) -> Dict[str, Any]:
    """
    Error envelope.

    Args:
        message: Human-readable error message
        code: Machine-readable error code (e.g., "INVALID_CREDENTIALS")
        details: Structured extra data, e.g. {"retryAfter": 42}
        errors: Per-field validation errors
    """
    error: Dict[str, Any] = {"message": message}
    if code:
        error["code"] = code
    if details is not None:
        error["details"] = details
    if errors:
        error["errors"] = errors
    return {"success": False, "error": error}


def pagination_meta(page: int, limit: int, total: Optional[int] = None) -> Dict[str, Any]:
    """Build the pagination block shared by paginated endpoints."""
    meta: Dict[str, Any] = {"page": page, "limit": limit}
    if total is not None:
        meta["total"] = total
        meta["totalPages"] = (total + limit - 1) // limit if limit > 0 else 0
    return meta


def paginated_response(
    items: list,
    pagination: Dict[str, Any],
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """Success envelope for one page of ``items`` plus its pagination_meta() block."""
    response = success_response(items, message)
    response["pagination"] = pagination
    return response
