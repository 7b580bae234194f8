"""
Session token management.

Issues signed access/refresh JWT pairs, persists refresh-token hashes,
rotates and revokes them, and owns the password-reset token lifecycle.

Access tokens are verified from their signature alone; only rotation,
revocation and reset-token operations touch the store.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, TypedDict

from jose import ExpiredSignatureError, JWTError, jwt

from common.crypto import TokenHasher
from marketplace.database.credential_store import CredentialStore
from marketplace.errors import (
    TokenExpiredError,
    TokenInvalidError,
    UserBlockedError,
    UserDeletedError,
)

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenPair(TypedDict):
    accessToken: str
    refreshToken: str
    expiresIn: int


class TokenManager:
    """
    Handles JWT issuance, verification, rotation and revocation.
    """

    def __init__(
        self,
        store: CredentialStore,
        access_secret: str,
        refresh_secret: str,
        access_expiry_seconds: int,
        refresh_expiry_seconds: int,
        reset_expiry_seconds: int = 3600,
        algorithm: str = "HS256",
    ):
        """
        Initialize TokenManager.

        Args:
            store: Credential store accessor
            access_secret: Signing secret for access tokens
            refresh_secret: Signing secret for refresh tokens (must differ)
            access_expiry_seconds: Access token lifetime
            refresh_expiry_seconds: Refresh token lifetime
            reset_expiry_seconds: Password-reset token lifetime
            algorithm: JWT signing algorithm
        """
        self._store = store
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._access_expiry = access_expiry_seconds
        self._refresh_expiry = refresh_expiry_seconds
        self._reset_expiry = reset_expiry_seconds
        self._algorithm = algorithm

    @property
    def access_expiry_seconds(self) -> int:
        return self._access_expiry

    @property
    def reset_expiry_seconds(self) -> int:
        return self._reset_expiry

    # ─────────────────────────────────────────────────────────────────
    # Issue / verify
    # ─────────────────────────────────────────────────────────────────

    async def issue_token_pair(self, user: dict) -> TokenPair:
        """
        Sign an access/refresh pair and persist the refresh token's hash.

        Args:
            user: User dict with _id, email and resolved role name

        Returns:
            TokenPair; the raw refresh token is only ever returned here
        """
        user_id = str(user["_id"])
        now = datetime.now(timezone.utc)

        access_token = jwt.encode(
            {
                "userId": user_id,
                "email": user.get("email"),
                "role": user.get("role"),
                "type": ACCESS_TOKEN_TYPE,
                "iat": now,
                "exp": now + timedelta(seconds=self._access_expiry),
            },
            self._access_secret,
            algorithm=self._algorithm,
        )

        refresh_expires_at = now + timedelta(seconds=self._refresh_expiry)
        refresh_token = jwt.encode(
            {
                "userId": user_id,
                "type": REFRESH_TOKEN_TYPE,
                # Two pairs issued within the same second must still differ
                "jti": uuid.uuid4().hex,
                "iat": now,
                "exp": refresh_expires_at,
            },
            self._refresh_secret,
            algorithm=self._algorithm,
        )

        await self._store.insert_refresh_token(
            user_id=user_id,
            token_hash=TokenHasher.hash_token(refresh_token),
            expires_at=refresh_expires_at,
        )

        return TokenPair(
            accessToken=access_token,
            refreshToken=refresh_token,
            expiresIn=self._access_expiry,
        )

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Decode an access token.

        Raises:
            TokenExpiredError: Signature valid but token expired
            TokenInvalidError: Bad signature, malformed, or not an access token
        """
        return self._decode(token, self._access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        """Decode a refresh token. Same errors as verify_access_token."""
        return self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)

    def _decode(self, token: str, secret: str, expected_type: str) -> Dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenInvalidError()

        try:
            claims = jwt.decode(token, secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            raise TokenInvalidError() from e

        if claims.get("type") != expected_type or not claims.get("userId"):
            raise TokenInvalidError()

        return claims

    # ─────────────────────────────────────────────────────────────────
    # Rotation / revocation
    # ─────────────────────────────────────────────────────────────────

    async def rotate_refresh_token(self, old_token: str) -> Tuple[dict, TokenPair]:
        """
        Exchange a refresh token for a new pair.

        The old token is revoked with a conditional update, so of two
        concurrent rotations of the same token exactly one succeeds.

        Returns:
            tuple of (user, new TokenPair)

        Raises:
            TokenExpiredError: Refresh token expired
            TokenInvalidError: Bad token, or already rotated/revoked
            UserBlockedError: Owner is blocked
            UserDeletedError: Owner is deleted
        """
        claims = self.verify_refresh_token(old_token)

        revoked = await self._store.revoke_live_refresh_token(TokenHasher.hash_token(old_token))
        if revoked is None or str(revoked["userId"]) != claims["userId"]:
            logger.warning(f"Refresh token reuse or unknown token for user {claims['userId']}")
            raise TokenInvalidError("Refresh token has been revoked")

        user = await self._store.find_user_by_id(claims["userId"])
        if not user:
            raise TokenInvalidError()
        if user.get("isDeleted"):
            raise UserDeletedError()
        if user.get("isBlocked"):
            raise UserBlockedError()

        pair = await self.issue_token_pair(user)
        return user, pair

    async def revoke_refresh_token(self, token: str) -> bool:
        """
        Revoke a single refresh token.

        Idempotent: an unknown or already-revoked token is a no-op.

        Returns:
            True if this call revoked the token
        """
        revoked = await self._store.revoke_refresh_token(TokenHasher.hash_token(token))
        if not revoked:
            logger.debug("Refresh token already revoked or unknown")
        return revoked

    async def revoke_all_for_user(self, user_id: str) -> int:
        """Revoke every live refresh token of a user. Returns the number revoked."""
        count = await self._store.revoke_all_refresh_tokens(user_id)
        logger.info(f"Revoked {count} refresh tokens for user {user_id}")
        return count

    # ─────────────────────────────────────────────────────────────────
    # Password-reset tokens
    # ─────────────────────────────────────────────────────────────────

    async def create_password_reset_token(self, user_id: str) -> str:
        """
        Mint a single-use reset token, invalidating any earlier active one.

        Returns:
            Raw token (only its hash is stored)
        """
        await self._store.invalidate_reset_tokens(user_id)

        token = TokenHasher.generate_token()
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self._reset_expiry)
        await self._store.insert_reset_token(
            user_id=user_id,
            token_hash=TokenHasher.hash_token(token),
            expires_at=expires_at,
        )
        return token

    async def find_password_reset_token(self, token: str) -> Optional[dict]:
        """Return the active (unused, unexpired) reset token record, if any."""
        if not token:
            return None
        return await self._store.find_active_reset_token(TokenHasher.hash_token(token))

    async def consume_password_reset_token(self, token_id) -> bool:
        """Mark a reset token used. False if another request used it first."""
        return await self._store.mark_reset_token_used(token_id)

    async def release_password_reset_token(self, token_id) -> bool:
        """Undo consume_password_reset_token after a failed password write."""
        return await self._store.release_reset_token(token_id)
