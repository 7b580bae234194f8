"""
Auth pipeline functions.

Stateless orchestration for the credential flows: register, login,
refresh, logout, password reset and change, and device sessions.
Route handlers call these; the services they compose are passed in.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from common.crypto import CryptoError, PasswordHasher
from common.utils.log_config import mask_email
from marketplace.database.credential_store import CredentialStore
from marketplace.errors import (
    EmailExistsError,
    InvalidCredentialsError,
    InvalidPasswordError,
    InvalidRoleError,
    InvalidTokenError,
    PhoneExistsError,
    SessionNotFoundError,
    StoreUnavailableError,
    UserBlockedError,
    UserDeletedError,
    UserNotFoundError,
)
from marketplace.serializers import format_session, sanitize_user
from marketplace.services.audit import AuditAction, AuditService
from marketplace.services.auth.device_detector import DeviceDetector
from marketplace.services.auth.token_manager import TokenManager
from marketplace.services.tasks import BackgroundTaskRunner

if TYPE_CHECKING:
    from marketplace.services.fraud.fraud_service import FraudService
    from marketplace.services.messaging import EmailService
    from marketplace.services.notifications import NotificationService

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent"


async def register_pipeline(
    store: CredentialStore,
    token_manager: TokenManager,
    password_hasher: PasswordHasher,
    audit_service: AuditService,
    runner: BackgroundTaskRunner,
    notification_service: "NotificationService",
    email_service: "EmailService",
    email: str,
    password: str,
    name: str,
    phone: Optional[str] = None,
    role: str = "buyer",
) -> dict:
    """
    Orchestrates the registration flow.

    Args:
        store: Credential store accessor
        token_manager: For issuing the first token pair
        password_hasher: bcrypt hasher
        audit_service: Audit trail writer
        runner: Background runner for the welcome side effects
        notification_service: In-app notification sink
        email_service: Email delivery
        email: Email address
        password: Plain password (already strength-checked by the schema)
        name: Display name
        phone: Optional phone number
        role: Role name, must exist in the roles collection

    Returns:
        dict with sanitized user and tokens

    Raises:
        EmailExistsError: Email already registered
        PhoneExistsError: Phone already registered
        InvalidRoleError: Role lookup failed
    """
    if await store.find_user_by_email(email):
        raise EmailExistsError()

    if phone and await store.find_user_by_phone(phone):
        raise PhoneExistsError()

    role_record = await store.find_role_by_name(role)
    if not role_record:
        raise InvalidRoleError(role)

    password_hash = await asyncio.to_thread(password_hasher.hash_password, password)

    # The unique indexes still reject a concurrent duplicate here
    user = await store.create_user(
        email=email,
        name=name,
        role=role_record,
        password_hash=password_hash,
        phone=phone,
    )
    user_id = str(user["_id"])

    tokens = await token_manager.issue_token_pair(user)

    await audit_service.log(
        AuditAction.USER_REGISTERED,
        actor_user_id=user_id,
        entity_type="user",
        entity_id=user_id,
        metadata={"role": user["role"]},
    )

    runner.submit(
        "welcome_notification",
        notification_service.create_notification,
        user_id,
        "welcome",
        "Welcome to Marketplace",
        f"Hi {name}, your account is ready.",
    )
    runner.submit("welcome_email", email_service.send_welcome_email, user["email"], name)

    logger.info(f"User registered: {user_id}")

    return {
        "user": sanitize_user(user),
        "tokens": tokens,
    }


async def login_pipeline(
    store: CredentialStore,
    token_manager: TokenManager,
    password_hasher: PasswordHasher,
    audit_service: AuditService,
    runner: BackgroundTaskRunner,
    fraud_service: "FraudService",
    device_detector: DeviceDetector,
    email: str,
    password: str,
    ip_address: str,
    user_agent: str,
) -> dict:
    """
    Orchestrates the login flow.

    An unknown email and a wrong password produce the same error. Blocked
    and deleted states are reported as soon as the account is found.

    Returns:
        dict with sanitized user and tokens

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
        UserBlockedError: Account blocked
        UserDeletedError: Account soft-deleted
    """
    user = await store.find_user_by_email(email)
    if not user:
        logger.info(f"Login failed for unknown email {mask_email(email)}")
        raise InvalidCredentialsError()

    if user.get("isBlocked"):
        raise UserBlockedError()

    if user.get("isDeleted"):
        raise UserDeletedError()

    try:
        matches = await asyncio.to_thread(
            password_hasher.verify_password, password, user.get("passwordHash")
        )
    except CryptoError as e:
        logger.error(f"Stored password hash for user {user['_id']} is unreadable: {e}")
        raise InvalidCredentialsError() from e

    if not matches:
        logger.info(f"Login failed for user {user['_id']}: wrong password")
        raise InvalidCredentialsError()

    user_id = str(user["_id"])
    tokens = await token_manager.issue_token_pair(user)
    await store.set_last_login(user_id)

    device = device_detector.detect(user_agent)
    await store.record_device_session(user_id, ip_address, user_agent, device)

    await audit_service.log(
        AuditAction.USER_LOGIN,
        actor_user_id=user_id,
        entity_type="user",
        entity_id=user_id,
        ip_address=ip_address,
        device_info=dict(device),
    )

    runner.submit("login_device_check", fraud_service.check_many_devices, user_id)

    logger.info(f"User logged in: {user_id}")

    return {
        "user": sanitize_user(user),
        "tokens": tokens,
    }


async def refresh_pipeline(token_manager: TokenManager, refresh_token: str) -> dict:
    """Rotate a refresh token. Errors come from TokenManager.rotate_refresh_token."""
    user, tokens = await token_manager.rotate_refresh_token(refresh_token)
    return {
        "user": sanitize_user(user),
        "tokens": tokens,
    }


async def logout_pipeline(token_manager: TokenManager, refresh_token: str) -> dict:
    """Revoke one refresh token. Repeating the call is harmless."""
    await token_manager.revoke_refresh_token(refresh_token)
    return {"message": "Logged out successfully"}


async def logout_all_pipeline(
    token_manager: TokenManager,
    audit_service: AuditService,
    user_id: str,
) -> dict:
    """Revoke every refresh token of the user."""
    revoked = await token_manager.revoke_all_for_user(user_id)

    await audit_service.log(
        AuditAction.LOGOUT_ALL,
        actor_user_id=user_id,
        entity_type="user",
        entity_id=user_id,
        metadata={"revokedCount": revoked},
    )

    return {"message": "Logged out from all devices", "revokedCount": revoked}


async def forgot_password_pipeline(
    store: CredentialStore,
    token_manager: TokenManager,
    runner: BackgroundTaskRunner,
    email_service: "EmailService",
    email: str,
) -> dict:
    """
    Start a password reset.

    The response never depends on whether the account exists. The lookup,
    token minting and email all run in the background so neither the
    response body nor its timing reveals anything.
    """
    runner.submit(
        "password_reset_email",
        _send_password_reset,
        store,
        token_manager,
        email_service,
        email,
    )
    return {"message": FORGOT_PASSWORD_MESSAGE}


async def _send_password_reset(
    store: CredentialStore,
    token_manager: TokenManager,
    email_service: "EmailService",
    email: str,
) -> None:
    user = await store.find_user_by_email(email)
    if not user or user.get("isBlocked") or user.get("isDeleted"):
        logger.info(f"Password reset requested for unknown or inactive email {mask_email(email)}")
        return

    token = await token_manager.create_password_reset_token(str(user["_id"]))
    result = await email_service.send_password_reset_email(user["email"], token, user.get("name"))
    if not result.get("success"):
        logger.warning(f"Password reset email to user {user['_id']} failed: {result.get('error')}")


async def reset_password_pipeline(
    store: CredentialStore,
    token_manager: TokenManager,
    password_hasher: PasswordHasher,
    audit_service: AuditService,
    token: str,
    new_password: str,
    ip_address: Optional[str] = None,
) -> dict:
    """
    Complete a password reset.

    Refresh tokens are revoked only after the reset token has been
    consumed; a failed attempt leaves existing sessions untouched.

    The token is consumed before the new hash is written. If that write
    fails with StoreUnavailableError the token is released again so the
    same link can be retried; if the release fails too, the user has to
    request a new reset.

    Raises:
        InvalidTokenError: Token unknown, used, expired, or consumed concurrently
        StoreUnavailableError: The store failed while writing the new hash
    """
    record = await token_manager.find_password_reset_token(token)
    if not record:
        raise InvalidTokenError()

    user_id = str(record["userId"])
    user = await store.find_user_by_id(user_id)
    if not user or user.get("isDeleted"):
        raise InvalidTokenError()

    password_hash = await asyncio.to_thread(password_hasher.hash_password, new_password)

    if not await token_manager.consume_password_reset_token(record["_id"]):
        raise InvalidTokenError()

    try:
        await store.set_password_hash(user_id, password_hash)
    except StoreUnavailableError:
        logger.warning(f"Password write failed for user {user_id}, releasing reset token")
        await token_manager.release_password_reset_token(record["_id"])
        raise

    await token_manager.revoke_all_for_user(user_id)

    await audit_service.log(
        AuditAction.PASSWORD_RESET,
        actor_user_id=user_id,
        entity_type="user",
        entity_id=user_id,
        ip_address=ip_address,
    )

    logger.info(f"Password reset for user {user_id}")
    return {"message": "Password has been reset. Please log in again."}


async def change_password_pipeline(
    store: CredentialStore,
    token_manager: TokenManager,
    password_hasher: PasswordHasher,
    audit_service: AuditService,
    user_id: str,
    current_password: str,
    new_password: str,
    ip_address: Optional[str] = None,
) -> dict:
    """
    Change the password of a logged-in user and end all of their sessions.

    Raises:
        UserNotFoundError: User doesn't exist
        InvalidPasswordError: Current password doesn't match
    """
    user = await store.find_user_by_id(user_id)
    if not user or user.get("isDeleted"):
        raise UserNotFoundError()

    try:
        matches = await asyncio.to_thread(
            password_hasher.verify_password, current_password, user.get("passwordHash")
        )
    except CryptoError as e:
        logger.error(f"Stored password hash for user {user_id} is unreadable: {e}")
        raise InvalidPasswordError() from e

    if not matches:
        raise InvalidPasswordError()

    password_hash = await asyncio.to_thread(password_hasher.hash_password, new_password)
    await store.set_password_hash(user_id, password_hash)
    await token_manager.revoke_all_for_user(user_id)

    await audit_service.log(
        AuditAction.PASSWORD_CHANGED,
        actor_user_id=user_id,
        entity_type="user",
        entity_id=user_id,
        ip_address=ip_address,
    )

    return {"message": "Password changed. Please log in again."}


async def get_current_user_pipeline(store: CredentialStore, user_id: str) -> dict:
    """Load the authenticated user's profile."""
    user = await store.find_user_by_id(user_id)
    if not user or user.get("isDeleted"):
        raise UserNotFoundError()
    return sanitize_user(user)


async def list_sessions_pipeline(store: CredentialStore, user_id: str) -> list:
    """List the user's active device sessions, most recently seen first."""
    sessions = await store.list_device_sessions(user_id)
    return [format_session(s) for s in sessions]


async def revoke_session_pipeline(
    store: CredentialStore,
    audit_service: AuditService,
    user_id: str,
    session_id: str,
) -> dict:
    """
    Revoke one of the user's own device sessions.

    Raises:
        SessionNotFoundError: Unknown id, another user's session, or already revoked
    """
    if not await store.revoke_device_session(user_id, session_id):
        raise SessionNotFoundError()

    await audit_service.log(
        AuditAction.SESSION_REVOKED,
        actor_user_id=user_id,
        entity_type="deviceSession",
        entity_id=session_id,
    )
    return {"message": "Session revoked"}

