"""
One-time passcode verification.

Two channels share one mechanism:
    - phone: registration/login; a verified code yields a token pair and
      auto-provisions an account on first use
    - email: password-reset initiation; a verified code yields a
      password-reset token

Only the SHA-256 hash of a code is stored. Every query is scoped to the
(channel, destination) pair, so a code issued for one phone number or
email can never verify another.
"""

import logging
import math
import re
from datetime import datetime, timedelta, timezone

from common.crypto import TokenHasher
from common.utils.log_config import mask_email, mask_phone
from marketplace.database.credential_store import CredentialStore
from marketplace.errors import (
    EmailExistsError,
    EmailSendFailedError,
    InvalidOtpError,
    InvalidRoleError,
    OtpCooldownError,
    PhoneExistsError,
    UserBlockedError,
    UserDeletedError,
)
from marketplace.serializers import sanitize_user
from marketplace.services.auth.token_manager import TokenManager
from marketplace.services.messaging import EmailService, SmsService
from marketplace.services.tasks import BackgroundTaskRunner

logger = logging.getLogger(__name__)

PHONE_CHANNEL = "phone"
EMAIL_CHANNEL = "email"
CHANNELS = (PHONE_CHANNEL, EMAIL_CHANNEL)

DEFAULT_OTP_ROLE = "buyer"
PLACEHOLDER_EMAIL_DOMAIN = "phone.local"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def placeholder_email(phone: str) -> str:
    """Synthesized email for accounts provisioned from a phone number."""
    return f"{re.sub(r'[^0-9]', '', phone)}@{PLACEHOLDER_EMAIL_DOMAIN}"


class OtpService:
    """
    Sends, verifies and re-sends one-time passcodes.
    """

    def __init__(
        self,
        store: CredentialStore,
        token_manager: TokenManager,
        runner: BackgroundTaskRunner,
        sms_service: SmsService,
        email_service: EmailService,
        otp_length: int = 6,
        expiry_minutes: int = 5,
        cooldown_minutes: int = 1,
        max_attempts: int = 3,
    ):
        """
        Initialize OtpService.

        Args:
            store: Credential store accessor
            token_manager: Issues token pairs (phone) and reset tokens (email)
            runner: Background runner for SMS dispatch
            sms_service: SMS delivery
            email_service: Email delivery
            otp_length: Number of digits per code
            expiry_minutes: Code lifetime
            cooldown_minutes: Minimum gap between sends to one destination
            max_attempts: Wrong guesses allowed per request
        """
        self._store = store
        self._token_manager = token_manager
        self._runner = runner
        self._sms_service = sms_service
        self._email_service = email_service
        self._otp_length = otp_length
        self._expiry = timedelta(minutes=expiry_minutes)
        self._cooldown = timedelta(minutes=cooldown_minutes)
        self._max_attempts = max_attempts

    @property
    def expiry_seconds(self) -> int:
        return int(self._expiry.total_seconds())

    # ─────────────────────────────────────────────────────────────────
    # Send / resend
    # ─────────────────────────────────────────────────────────────────

    async def send_otp(self, channel: str, destination: str) -> dict:
        """
        Issue a code for a destination.

        Args:
            channel: "phone" or "email"
            destination: Phone number or email address

        Returns:
            dict with message and expiresIn (seconds)

        Raises:
            OtpCooldownError: A code was sent to this destination within the cooldown
            EmailSendFailedError: Email channel and delivery failed
        """
        destination = self._normalize(channel, destination)
        await self._check_cooldown(channel, destination)
        return await self._issue(channel, destination)

    async def resend_otp(self, channel: str, destination: str) -> dict:
        """
        Expire every pending code for the destination and send a fresh one.

        The cooldown is skipped once because the earlier request is now dead.
        """
        destination = self._normalize(channel, destination)
        expired = await self._store.expire_pending_otps(channel, destination)
        logger.info(f"Expired {expired} pending {channel} OTP requests before resend")
        return await self._issue(channel, destination)

    async def _check_cooldown(self, channel: str, destination: str) -> None:
        if self._cooldown.total_seconds() <= 0:
            return

        now = datetime.now(timezone.utc)
        recent = await self._store.find_latest_otp_since(channel, destination, now - self._cooldown)
        if recent:
            available_at = _as_utc(recent["createdAt"]) + self._cooldown
            wait_seconds = max(1, math.ceil((available_at - now).total_seconds()))
            raise OtpCooldownError(wait_seconds)

    async def _issue(self, channel: str, destination: str) -> dict:
        response = {
            "message": "OTP sent successfully",
            "expiresIn": self.expiry_seconds,
        }

        if channel == PHONE_CHANNEL:
            user = await self._store.find_user_by_phone(destination)
        else:
            user = await self._store.find_user_by_email(destination)
            if not user or user.get("isBlocked") or user.get("isDeleted"):
                # Unmatchable record so cooldown and attempts behave as for a real account
                await self._store.insert_otp_request(
                    channel=channel,
                    destination=destination,
                    code_hash=TokenHasher.hash_token(TokenHasher.generate_token()),
                    expires_at=datetime.now(timezone.utc) + self._expiry,
                )
                logger.info(f"Email OTP requested for unknown or inactive {mask_email(destination)}")
                return response

        code = TokenHasher.generate_otp(self._otp_length)
        await self._store.insert_otp_request(
            channel=channel,
            destination=destination,
            code_hash=TokenHasher.hash_otp(code),
            expires_at=datetime.now(timezone.utc) + self._expiry,
            user_id=str(user["_id"]) if user else None,
        )

        expiry_minutes = int(self._expiry.total_seconds() // 60)
        if channel == PHONE_CHANNEL:
            self._runner.submit(
                "otp_sms",
                self._dispatch_sms,
                destination,
                code,
                expiry_minutes,
            )
            logger.info(f"OTP sent to {mask_phone(destination)}")
        else:
            result = await self._email_service.send_otp_email(destination, code, expiry_minutes)
            if not result.get("success"):
                logger.error(f"OTP email to {mask_email(destination)} failed: {result.get('error')}")
                raise EmailSendFailedError()
            logger.info(f"OTP sent to {mask_email(destination)}")

        return response

    async def _dispatch_sms(self, phone: str, code: str, expiry_minutes: int) -> None:
        result = await self._sms_service.send_otp(phone, code, expiry_minutes)
        if not result.get("success"):
            logger.warning(f"OTP SMS to {mask_phone(phone)} failed: {result.get('error')}")

    # ─────────────────────────────────────────────────────────────────
    # Verify
    # ─────────────────────────────────────────────────────────────────

    async def verify_otp(self, channel: str, destination: str, code: str) -> dict:
        """
        Check a code and complete the channel's flow.

        A wrong code counts against the most recent pending request for
        the destination. Once a request has used up its attempts, even the
        correct code no longer matches it.

        Returns:
            phone: dict with user, tokens and isNewUser
            email: dict with resetToken and expiresIn

        Raises:
            InvalidOtpError: No pending, unexpired, non-exhausted request matches
            UserBlockedError: Phone account is blocked
            UserDeletedError: Phone account is deleted
        """
        destination = self._normalize(channel, destination)

        request = await self._store.find_matching_otp(
            channel,
            destination,
            TokenHasher.hash_otp(code),
            self._max_attempts,
        )

        if not request:
            updated = await self._store.increment_latest_otp_attempts(channel, destination)
            if updated:
                logger.info(
                    f"Wrong {channel} OTP, attempt {updated['attempts']} of {self._max_attempts}"
                )
            raise InvalidOtpError()

        # Loses to a concurrent verification of the same request
        if not await self._store.mark_otp_verified(request["_id"]):
            raise InvalidOtpError()

        if channel == PHONE_CHANNEL:
            return await self._complete_phone_login(destination)
        return await self._complete_password_reset(destination)

    async def _complete_phone_login(self, phone: str) -> dict:
        user, is_new_user = await self._find_or_create_phone_user(phone)

        if user.get("isDeleted"):
            raise UserDeletedError()
        if user.get("isBlocked"):
            raise UserBlockedError()

        user_id = str(user["_id"])
        tokens = await self._token_manager.issue_token_pair(user)
        await self._store.set_last_login(user_id)

        logger.info(f"Phone OTP verified for user {user_id}")

        return {
            "user": sanitize_user(user),
            "tokens": tokens,
            "isNewUser": is_new_user,
        }

    async def _find_or_create_phone_user(self, phone: str):
        user = await self._store.find_user_by_phone(phone)
        if user:
            return user, False

        role = await self._store.find_role_by_name(DEFAULT_OTP_ROLE)
        if not role:
            raise InvalidRoleError(DEFAULT_OTP_ROLE)

        try:
            user = await self._store.create_user(
                email=placeholder_email(phone),
                name=f"User_{phone[-4:]}",
                role=role,
                phone=phone,
                is_verified=True,
            )
        except (EmailExistsError, PhoneExistsError):
            # A concurrent first verification for the same phone won
            user = await self._store.find_user_by_phone(phone)
            if not user:
                raise
            return user, False

        logger.info(f"New user {user['_id']} created via OTP for {mask_phone(phone)}")
        return user, True

    async def _complete_password_reset(self, email: str) -> dict:
        user = await self._store.find_user_by_email(email)
        if not user or user.get("isBlocked") or user.get("isDeleted"):
            raise InvalidOtpError()

        reset_token = await self._token_manager.create_password_reset_token(str(user["_id"]))

        return {
            "resetToken": reset_token,
            "expiresIn": self._token_manager.reset_expiry_seconds,
        }

    @staticmethod
    def _normalize(channel: str, destination: str) -> str:
        if channel not in CHANNELS:
            raise ValueError(f"Unknown OTP channel: {channel}")
        destination = destination.strip()
        if channel == EMAIL_CHANNEL:
            return destination.lower()
        return re.sub(r"[\s-]", "", destination)
