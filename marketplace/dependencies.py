"""
FastAPI dependencies for the marketplace application.

Provides dependency injection for all services.
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from common.crypto import PasswordHasher
from common.utils.rate_limit import RateLimiter
from marketplace.config import Settings
from marketplace.database.credential_store import CredentialStore
from marketplace.errors import AuthRateLimitError, OtpRateLimitError
from marketplace.middleware.auth import AuthMiddleware

# Auth services
from marketplace.services.auth.device_detector import DeviceDetector
from marketplace.services.auth.token_manager import TokenManager

# Supporting services
from marketplace.services.audit.audit_service import AuditService
from marketplace.services.messaging.email_service import EmailService
from marketplace.services.messaging.sms_service import SmsService
from marketplace.services.notifications.notification_service import NotificationService
from marketplace.services.tasks.background import BackgroundTaskRunner

# OTP / fraud
from marketplace.services.otp.otp_service import OtpService
from marketplace.services.fraud.fraud_service import FraudService

MODERATOR_ROLES = ("moderator", "admin")


# ─────────────────────────────────────────────────────────────────
# Global service instances
# ─────────────────────────────────────────────────────────────────

# Store
_credential_store: Optional[CredentialStore] = None

# Auth
_password_hasher: Optional[PasswordHasher] = None
_token_manager: Optional[TokenManager] = None
_auth_middleware: Optional[AuthMiddleware] = None
_auth_rate_limiter: Optional[RateLimiter] = None
_otp_rate_limiter: Optional[RateLimiter] = None

# Supporting
_task_runner: Optional[BackgroundTaskRunner] = None
_audit_service: Optional[AuditService] = None
_notification_service: Optional[NotificationService] = None
_email_service: Optional[EmailService] = None
_sms_service: Optional[SmsService] = None

# OTP / fraud
_otp_service: Optional[OtpService] = None
_fraud_service: Optional[FraudService] = None


# ─────────────────────────────────────────────────────────────────
# Cached singletons
# ─────────────────────────────────────────────────────────────────

@lru_cache()
def get_device_detector() -> DeviceDetector:
    """Get cached DeviceDetector instance."""
    return DeviceDetector()


# ─────────────────────────────────────────────────────────────────
# Initialization functions
# ─────────────────────────────────────────────────────────────────

def init_store(db: AsyncIOMotorDatabase, settings: Settings) -> None:
    """Initialize the credential store."""
    global _credential_store

    _credential_store = CredentialStore(db=db, timeout=settings.DB_OPERATION_TIMEOUT_SECONDS)


def init_auth_services(settings: Settings) -> None:
    """Initialize auth services."""
    global _password_hasher, _token_manager, _auth_middleware

    _password_hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)

    _token_manager = TokenManager(
        store=get_credential_store(),
        access_secret=settings.JWT_ACCESS_SECRET,
        refresh_secret=settings.JWT_REFRESH_SECRET,
        access_expiry_seconds=settings.access_expiry_seconds,
        refresh_expiry_seconds=settings.refresh_expiry_seconds,
        reset_expiry_seconds=settings.password_reset_expiry_seconds,
        algorithm=settings.JWT_ALGORITHM,
    )

    _auth_middleware = AuthMiddleware(token_manager=_token_manager)


def init_rate_limiters(settings: Settings) -> None:
    """Initialize the per-IP limiters for credential and OTP endpoints."""
    global _auth_rate_limiter, _otp_rate_limiter

    _auth_rate_limiter = RateLimiter(
        max_requests=settings.AUTH_RATE_LIMIT_MAX,
        window_seconds=settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
    )
    _otp_rate_limiter = RateLimiter(
        max_requests=settings.OTP_RATE_LIMIT_MAX,
        window_seconds=settings.OTP_RATE_LIMIT_WINDOW_SECONDS,
    )


def init_supporting_services(db: AsyncIOMotorDatabase, settings: Settings) -> None:
    """Initialize the task runner, audit trail, notifications and delivery."""
    global _task_runner, _audit_service, _notification_service
    global _email_service, _sms_service

    _task_runner = BackgroundTaskRunner()
    _audit_service = AuditService(store=get_credential_store())
    _notification_service = NotificationService(db=db)

    _email_service = EmailService(
        mode=settings.EMAIL_MODE,
        from_email=settings.EMAIL_FROM,
        from_name=settings.EMAIL_FROM_NAME,
        frontend_url=settings.FRONTEND_URL,
        resend_api_key=settings.RESEND_API_KEY,
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        smtp_use_tls=settings.SMTP_USE_TLS,
    )

    _sms_service = SmsService(
        mode=settings.SMS_MODE,
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_FROM_NUMBER,
    )


def init_otp_services(settings: Settings) -> None:
    """Initialize OTP services."""
    global _otp_service

    _otp_service = OtpService(
        store=get_credential_store(),
        token_manager=get_token_manager(),
        runner=get_task_runner(),
        sms_service=get_sms_service(),
        email_service=get_email_service(),
        otp_length=settings.OTP_LENGTH,
        expiry_minutes=settings.OTP_EXPIRY_MINUTES,
        cooldown_minutes=settings.OTP_COOLDOWN_MINUTES,
        max_attempts=settings.OTP_MAX_ATTEMPTS,
    )


def init_fraud_services(settings: Settings) -> None:
    """Initialize fraud services."""
    global _fraud_service

    _fraud_service = FraudService(
        store=get_credential_store(),
        audit_service=get_audit_service(),
        notification_service=get_notification_service(),
        runner=get_task_runner(),
        max_listings_per_hour=settings.FRAUD_MAX_LISTINGS_PER_HOUR,
        max_devices_per_day=settings.FRAUD_MAX_DEVICES_PER_DAY,
        max_rejections=settings.FRAUD_MAX_REJECTIONS_COUNT,
        risk_threshold=settings.FRAUD_RISK_THRESHOLD,
    )


def init_all_services(db: AsyncIOMotorDatabase, settings: Settings) -> None:
    """
    Initialize all services at application startup.

    Args:
        db: Main MongoDB database connection
        settings: Validated application settings
    """
    init_store(db, settings)
    init_auth_services(settings)
    init_rate_limiters(settings)
    init_supporting_services(db, settings)
    init_otp_services(settings)
    init_fraud_services(settings)


# ─────────────────────────────────────────────────────────────────
# Store getters
# ─────────────────────────────────────────────────────────────────

def get_credential_store() -> CredentialStore:
    """Get credential store instance."""
    if _credential_store is None:
        raise RuntimeError("Credential store not initialized.")
    return _credential_store


# ─────────────────────────────────────────────────────────────────
# Auth getters
# ─────────────────────────────────────────────────────────────────

def get_password_hasher() -> PasswordHasher:
    """Get password hasher instance."""
    if _password_hasher is None:
        raise RuntimeError("Auth services not initialized.")
    return _password_hasher


def get_token_manager() -> TokenManager:
    """Get token manager instance."""
    if _token_manager is None:
        raise RuntimeError("Auth services not initialized.")
    return _token_manager


def get_auth_middleware() -> AuthMiddleware:
    """Get auth middleware instance."""
    if _auth_middleware is None:
        raise RuntimeError("Auth services not initialized.")
    return _auth_middleware


async def require_auth(
    request: Request,
    auth_middleware: Annotated[AuthMiddleware, Depends(get_auth_middleware)]
) -> dict:
    """Dependency that requires authentication."""
    return await auth_middleware.require_auth(request)


async def require_moderator(
    request: Request,
    auth_middleware: Annotated[AuthMiddleware, Depends(get_auth_middleware)]
) -> dict:
    """Dependency that requires a moderator or admin."""
    return await auth_middleware.require_role(request, *MODERATOR_ROLES)


def get_auth_rate_limiter() -> RateLimiter:
    """Get the credential-endpoint rate limiter."""
    if _auth_rate_limiter is None:
        raise RuntimeError("Rate limiters not initialized.")
    return _auth_rate_limiter


def get_otp_rate_limiter() -> RateLimiter:
    """Get the OTP send/resend rate limiter."""
    if _otp_rate_limiter is None:
        raise RuntimeError("Rate limiters not initialized.")
    return _otp_rate_limiter


async def auth_rate_limit(request: Request) -> None:
    """Dependency that counts a credential request against the client IP."""
    retry_after = get_auth_rate_limiter().hit(get_client_ip(request))
    if retry_after is not None:
        raise AuthRateLimitError(retry_after)


async def otp_rate_limit(request: Request) -> None:
    """Dependency that counts an OTP send against the client IP."""
    retry_after = get_otp_rate_limiter().hit(get_client_ip(request))
    if retry_after is not None:
        raise OtpRateLimitError(retry_after)


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "0.0.0.0"


def get_user_agent(request: Request) -> str:
    """Extract User-Agent from request."""
    return request.headers.get("User-Agent", "")


# ─────────────────────────────────────────────────────────────────
# Supporting getters
# ─────────────────────────────────────────────────────────────────

def get_task_runner() -> BackgroundTaskRunner:
    """Get background task runner."""
    if _task_runner is None:
        raise RuntimeError("Supporting services not initialized.")
    return _task_runner


def get_audit_service() -> AuditService:
    """Get audit service instance."""
    if _audit_service is None:
        raise RuntimeError("Supporting services not initialized.")
    return _audit_service


def get_notification_service() -> NotificationService:
    """Get notification service instance."""
    if _notification_service is None:
        raise RuntimeError("Supporting services not initialized.")
    return _notification_service


def get_email_service() -> EmailService:
    """Get email service instance."""
    if _email_service is None:
        raise RuntimeError("Supporting services not initialized.")
    return _email_service


def get_sms_service() -> SmsService:
    """Get SMS service instance."""
    if _sms_service is None:
        raise RuntimeError("Supporting services not initialized.")
    return _sms_service


# ─────────────────────────────────────────────────────────────────
# OTP / fraud getters
# ─────────────────────────────────────────────────────────────────

def get_otp_service() -> OtpService:
    """Get OTP service instance."""
    if _otp_service is None:
        raise RuntimeError("OTP services not initialized.")
    return _otp_service


def get_fraud_service() -> FraudService:
    """Get fraud service instance."""
    if _fraud_service is None:
        raise RuntimeError("Fraud services not initialized.")
    return _fraud_service
