"""
Marketplace application settings.

Extends BaseAppSettings with token lifetimes, OTP and fraud thresholds,
and delivery provider configuration.
"""

from typing import Optional

from common.config import BaseAppSettings
from common.utils.durations import parse_expiry


class Settings(BaseAppSettings):
    """Settings for the marketplace API and its background jobs."""

    APP_NAME: str = "Marketplace"

    # ==========================================================================
    # Token lifetimes
    # ==========================================================================
    JWT_ACCESS_EXPIRY: str = "15m"
    JWT_REFRESH_EXPIRY: str = "7d"
    PASSWORD_RESET_EXPIRY: str = "1h"

    # bcrypt cost factor
    BCRYPT_ROUNDS: int = 12

    # ==========================================================================
    # OTP
    # ==========================================================================
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 5
    OTP_COOLDOWN_MINUTES: int = 1
    OTP_MAX_ATTEMPTS: int = 3

    # ==========================================================================
    # Per-IP rate limits (credential endpoints, OTP send/resend)
    # ==========================================================================
    AUTH_RATE_LIMIT_MAX: int = 10
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 900
    OTP_RATE_LIMIT_MAX: int = 5
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = 900

    # ==========================================================================
    # Fraud detection
    # ==========================================================================
    FRAUD_MAX_LISTINGS_PER_HOUR: int = 10
    FRAUD_MAX_DEVICES_PER_DAY: int = 5
    FRAUD_MAX_REJECTIONS_COUNT: int = 3
    FRAUD_RISK_THRESHOLD: int = 70

    # ==========================================================================
    # Maintenance mode
    # ==========================================================================
    MAINTENANCE_MODE: bool = False
    MAINTENANCE_CACHE_TTL_SECONDS: float = 60.0

    # ==========================================================================
    # Email delivery
    # ==========================================================================
    EMAIL_MODE: str = "console"  # console, smtp, resend
    EMAIL_FROM: str = "noreply@marketplace.local"
    EMAIL_FROM_NAME: str = "Marketplace"
    RESEND_API_KEY: Optional[str] = None
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    FRONTEND_URL: str = "http://localhost:3000"

    # ==========================================================================
    # SMS delivery
    # ==========================================================================
    SMS_MODE: str = "console"  # console, twilio
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None

    @property
    def access_expiry_seconds(self) -> int:
        return parse_expiry(self.JWT_ACCESS_EXPIRY)

    @property
    def refresh_expiry_seconds(self) -> int:
        return parse_expiry(self.JWT_REFRESH_EXPIRY)

    @property
    def password_reset_expiry_seconds(self) -> int:
        return parse_expiry(self.PASSWORD_RESET_EXPIRY)

    def collect_errors(self) -> list:
        errors = super().collect_errors()

        for name in ("JWT_ACCESS_EXPIRY", "JWT_REFRESH_EXPIRY", "PASSWORD_RESET_EXPIRY"):
            try:
                parse_expiry(getattr(self, name))
            except ValueError as e:
                errors.append(f"{name}: {e}")

        if not 4 <= self.BCRYPT_ROUNDS <= 31:
            errors.append("BCRYPT_ROUNDS must be between 4 and 31")

        for name in ("OTP_LENGTH", "OTP_EXPIRY_MINUTES", "OTP_MAX_ATTEMPTS"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        if self.OTP_COOLDOWN_MINUTES < 0:
            errors.append("OTP_COOLDOWN_MINUTES must not be negative")

        for name in (
            "AUTH_RATE_LIMIT_MAX",
            "AUTH_RATE_LIMIT_WINDOW_SECONDS",
            "OTP_RATE_LIMIT_MAX",
            "OTP_RATE_LIMIT_WINDOW_SECONDS",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        if self.EMAIL_MODE not in ("console", "smtp", "resend"):
            errors.append(f"Unknown EMAIL_MODE: {self.EMAIL_MODE}")
        elif self.EMAIL_MODE == "resend" and not self.RESEND_API_KEY:
            errors.append("RESEND_API_KEY is required when EMAIL_MODE=resend")

        if self.SMS_MODE not in ("console", "twilio"):
            errors.append(f"Unknown SMS_MODE: {self.SMS_MODE}")
        elif self.SMS_MODE == "twilio" and not (
            self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_FROM_NUMBER
        ):
            errors.append("TWILIO_* settings are required when SMS_MODE=twilio")

        return errors


settings = Settings()
