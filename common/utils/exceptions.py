"""
HTTP exceptions carrying a machine-readable error code.

Services raise these directly; the app-level handler renders them with
error_response(). Subclasses only pin the status and the default
message/code.

Example:
    from common.utils import NotFoundException

    async def get_fraud_log(log_id: str):
        log = await store.find_fraud_log(log_id)
        if not log:
            raise NotFoundException("Fraud log not found", code="FRAUD_LOG_NOT_FOUND")
        return log
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class APIException(HTTPException):
    """
    Base API exception.

    ``detail`` holds {message, code, details} so the exception also renders
    sensibly through FastAPI's default HTTPException handler.
    """

    status: int = 500
    default_message: str = "Internal server error"
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        status_code: Optional[int] = None,
    ):
        """
        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
            headers: Optional response headers
            status_code: Overrides the class status
        """
        self.message = message or self.default_message
        self.code = code or self.default_code

        detail: Dict[str, Any] = {"message": self.message, "code": self.code}
        if details is not None:
            detail["details"] = details

        super().__init__(
            status_code=status_code or self.status,
            detail=detail,
            headers=headers,
        )


class BadRequestException(APIException):
    """400 - Invalid input or a failed precondition."""
    status = 400
    default_message = "Bad request"
    default_code = "BAD_REQUEST"


class UnauthorizedException(APIException):
    """401 - Missing or invalid authentication."""
    status = 401
    default_message = "Unauthorized"
    default_code = "UNAUTHORIZED"


class ForbiddenException(APIException):
    """403 - Authenticated, but not allowed."""
    status = 403
    default_message = "Forbidden"
    default_code = "FORBIDDEN"


class NotFoundException(APIException):
    status = 404
    default_message = "Not found"
    default_code = "NOT_FOUND"


class ConflictException(APIException):
    """409 - Resource already exists."""
    status = 409
    default_message = "Conflict"
    default_code = "CONFLICT"


class BadGatewayException(APIException):
    """502 - An upstream provider (email, SMS) failed."""
    status = 502
    default_message = "Upstream service failed"
    default_code = "BAD_GATEWAY"


class _RetryableException(APIException):
    """Adds a Retry-After header and mirrors it in details.retryAfter."""

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        self.retry_after = retry_after
        super().__init__(
            message,
            code,
            details={"retryAfter": retry_after} if retry_after else None,
            headers={"Retry-After": str(retry_after)} if retry_after else None,
        )


class RateLimitException(_RetryableException):
    status = 429
    default_message = "Rate limit exceeded"
    default_code = "RATE_LIMIT_EXCEEDED"


class ServiceUnavailableException(_RetryableException):
    """503 - Temporarily unavailable, safe to retry."""
    status = 503
    default_message = "Service unavailable"
    default_code = "SERVICE_UNAVAILABLE"
