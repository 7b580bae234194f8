"""
Request schemas for the marketplace API.
"""

from marketplace.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
)
from marketplace.schemas.otp import (
    PhoneOtpRequest,
    PhoneOtpVerifyRequest,
    EmailOtpRequest,
    EmailOtpVerifyRequest,
)

__all__ = [
    "RegisterRequest",
    "LoginRequest",
    "RefreshTokenRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "ChangePasswordRequest",
    "PhoneOtpRequest",
    "PhoneOtpVerifyRequest",
    "EmailOtpRequest",
    "EmailOtpVerifyRequest",
]
