"""
Common library for reusable infrastructure components.

This package provides generic modules that can be used across
multiple projects:

- database: Async MongoDB connection manager (motor)
- crypto: Password hashing, token hashing, AES-GCM encryption
- utils: Standard responses, exceptions, password validation, caching
- config: Base settings class
"""

from common.database import MongoDB
from common.crypto import CryptoError, PasswordHasher, TokenHasher, EncryptionService
from common.utils import (
    success_response,
    error_response,
    paginated_response,
    APIException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    validate_password,
    TTLCache,
)
from common.config import BaseAppSettings, ConfigurationError

__all__ = [
    # Database
    "MongoDB",
    # Crypto
    "CryptoError",
    "PasswordHasher",
    "TokenHasher",
    "EncryptionService",
    # Utils
    "success_response",
    "error_response",
    "paginated_response",
    "APIException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "validate_password",
    "TTLCache",
    # Config
    "BaseAppSettings",
    "ConfigurationError",
]
