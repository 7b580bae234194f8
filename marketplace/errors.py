"""
Domain errors for the credential, OTP and fraud subsystems.

Each error carries a stable machine-readable code. Messages on the
authentication errors are deliberately vague where a more specific one
would reveal whether an account exists.
"""

from typing import Optional

from common.utils.exceptions import (
    APIException,
    BadGatewayException,
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RateLimitException,
    ServiceUnavailableException,
    UnauthorizedException,
)


# ─────────────────────────────────────────────────────────────────
# Conflict / validation
# ─────────────────────────────────────────────────────────────────

class EmailExistsError(ConflictException):
    def __init__(self):
        super().__init__("Email already registered", code="EMAIL_EXISTS")


class PhoneExistsError(ConflictException):
    def __init__(self):
        super().__init__("Phone number already registered", code="PHONE_EXISTS")


class InvalidRoleError(BadRequestException):
    def __init__(self, role: str):
        super().__init__(f"Invalid role: {role}", code="INVALID_ROLE")


# ─────────────────────────────────────────────────────────────────
# Authentication
# ─────────────────────────────────────────────────────────────────

class InvalidCredentialsError(UnauthorizedException):
    """Same message for unknown email and wrong password."""

    def __init__(self):
        super().__init__("Invalid email or password", code="INVALID_CREDENTIALS")


class TokenInvalidError(UnauthorizedException):
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, code="TOKEN_INVALID")


class TokenExpiredError(UnauthorizedException):
    """Signals the client that a silent refresh is worth attempting."""

    def __init__(self, message: str = "Token expired"):
        super().__init__(message, code="TOKEN_EXPIRED")


class InvalidTokenError(BadRequestException):
    """Password-reset token is unknown, used or expired."""

    def __init__(self):
        super().__init__("Invalid or expired reset token", code="INVALID_TOKEN")


class InvalidPasswordError(BadRequestException):
    def __init__(self):
        super().__init__("Current password is incorrect", code="INVALID_PASSWORD")


class InvalidOtpError(BadRequestException):
    def __init__(self):
        super().__init__("Invalid or expired OTP", code="INVALID_OTP")


class OtpCooldownError(RateLimitException):
    def __init__(self, retry_after: int):
        super().__init__(
            f"Please wait {retry_after} seconds before requesting a new OTP",
            code="OTP_COOLDOWN",
            retry_after=retry_after,
        )


class AuthRateLimitError(RateLimitException):
    def __init__(self, retry_after: int):
        super().__init__(
            "Too many authentication attempts. Please try again later.",
            code="AUTH_RATE_LIMIT_EXCEEDED",
            retry_after=retry_after,
        )


class OtpRateLimitError(RateLimitException):
    def __init__(self, retry_after: int):
        super().__init__(
            "Too many OTP requests. Please try again later.",
            code="OTP_RATE_LIMIT_EXCEEDED",
            retry_after=retry_after,
        )


# ─────────────────────────────────────────────────────────────────
# Account state
# ─────────────────────────────────────────────────────────────────

class UserBlockedError(ForbiddenException):
    def __init__(self):
        super().__init__("Account is blocked", code="USER_BLOCKED")


class UserDeletedError(UnauthorizedException):
    def __init__(self):
        super().__init__("Account has been deleted", code="USER_DELETED")


class UserNotFoundError(NotFoundException):
    def __init__(self):
        super().__init__("User not found", code="USER_NOT_FOUND")


class SessionNotFoundError(NotFoundException):
    def __init__(self):
        super().__init__("Session not found", code="SESSION_NOT_FOUND")


class FraudLogNotFoundError(NotFoundException):
    def __init__(self):
        super().__init__("Fraud log not found", code="FRAUD_LOG_NOT_FOUND")


# ─────────────────────────────────────────────────────────────────
# Transient
# ─────────────────────────────────────────────────────────────────

class EmailSendFailedError(BadGatewayException):
    def __init__(self):
        super().__init__("Failed to send email", code="EMAIL_SEND_FAILED")


class StoreUnavailableError(ServiceUnavailableException):
    """The store did not answer in time or the connection failed. Safe to retry."""

    def __init__(self, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(
            "Data store temporarily unavailable",
            code="STORE_UNAVAILABLE",
            retry_after=1,
        )


__all__ = [
    "APIException",
    "EmailExistsError",
    "PhoneExistsError",
    "InvalidRoleError",
    "InvalidCredentialsError",
    "TokenInvalidError",
    "TokenExpiredError",
    "InvalidTokenError",
    "InvalidPasswordError",
    "InvalidOtpError",
    "OtpCooldownError",
    "AuthRateLimitError",
    "OtpRateLimitError",
    "UserBlockedError",
    "UserDeletedError",
    "UserNotFoundError",
    "SessionNotFoundError",
    "FraudLogNotFoundError",
    "EmailSendFailedError",
    "StoreUnavailableError",
]
