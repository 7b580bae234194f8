"""
Pydantic models for auth request validation.

Defines schemas for registration, login, token refresh, password reset
and password change.
"""

import re
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from common.utils.password import validate_password

PHONE_PATTERN = re.compile(r"^\+?[\d\s-]{8,20}$")
REGISTRATION_ROLES = ("buyer", "seller", "designer")


def _check_password_strength(value: str) -> str:
    is_valid, errors = validate_password(value)
    if not is_valid:
        raise ValueError("; ".join(errors))
    return value


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Validate a phone number and strip spaces and dashes."""
    if value is None:
        return None
    if not PHONE_PATTERN.match(value.strip()):
        raise ValueError("Please provide a valid phone number")
    return re.sub(r"[\s-]", "", value.strip())


class RegisterRequest(BaseModel):
    """Request body for user registration."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = None
    role: str = Field(default="buyer", description="buyer | seller | designer")

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)

    @field_validator("phone")
    @classmethod
    def phone_format(cls, value: Optional[str]) -> Optional[str]:
        return normalize_phone(value)

    @field_validator("role")
    @classmethod
    def self_service_role(cls, value: str) -> str:
        # Moderator and admin accounts are never self-registered
        if value not in REGISTRATION_ROLES:
            raise ValueError(f"Role must be one of: {', '.join(REGISTRATION_ROLES)}")
        return value


class LoginRequest(BaseModel):
    """Request body for email/password login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    """Request body for token refresh and logout."""
    refreshToken: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    """Request body for forgot password."""
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for password reset."""
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class ChangePasswordRequest(BaseModel):
    """Request body for password change."""
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=8, max_length=128)

    @field_validator("newPassword")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)
