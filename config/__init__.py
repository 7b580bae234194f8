"""
Configuration module - Fixed provider constants.
"""

from config.messaging_config import (
    RESEND_API_URL,
    TWILIO_MESSAGES_URL,
    DELIVERY_HTTP_TIMEOUT,
    SMS_MAX_LENGTH,
)

__all__ = ["RESEND_API_URL", "TWILIO_MESSAGES_URL", "DELIVERY_HTTP_TIMEOUT", "SMS_MAX_LENGTH"]
