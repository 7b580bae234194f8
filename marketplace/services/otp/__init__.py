from marketplace.services.otp.otp_service import (
    OtpService,
    PHONE_CHANNEL,
    EMAIL_CHANNEL,
    placeholder_email,
)

__all__ = ["OtpService", "PHONE_CHANNEL", "EMAIL_CHANNEL", "placeholder_email"]
