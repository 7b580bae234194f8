"""
Utilities module - Common helpers for API responses, exceptions, caching and validation.
"""

from common.utils.responses import (
    success_response,
    error_response,
    paginated_response,
    pagination_meta,
)
from common.utils.exceptions import (
    APIException,
    BadRequestException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    RateLimitException,
    BadGatewayException,
    ServiceUnavailableException,
)
from common.utils.password import validate_password
from common.utils.cache import TTLCache
from common.utils.rate_limit import RateLimiter

__all__ = [
    "success_response",
    "error_response",
    "paginated_response",
    "pagination_meta",
    "APIException",
    "BadRequestException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "RateLimitException",
    "BadGatewayException",
    "ServiceUnavailableException",
    "validate_password",
    "TTLCache",
    "RateLimiter",
]
