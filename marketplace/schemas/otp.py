"""
Pydantic models for OTP request validation.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator

from marketplace.schemas.auth import normalize_phone


class PhoneOtpRequest(BaseModel):
    """Request body for sending or re-sending a phone OTP."""
    phone: str

    @field_validator("phone")
    @classmethod
    def phone_format(cls, value: str) -> str:
        return normalize_phone(value)


class PhoneOtpVerifyRequest(PhoneOtpRequest):
    """Request body for verifying a phone OTP."""
    otp: str = Field(..., pattern=r"^\d{4,10}$", description="Numeric code")


class EmailOtpRequest(BaseModel):
    """Request body for sending a password-reset OTP by email."""
    email: EmailStr


class EmailOtpVerifyRequest(EmailOtpRequest):
    """Request body for verifying a password-reset OTP."""
    otp: str = Field(..., pattern=r"^\d{4,10}$", description="Numeric code")
