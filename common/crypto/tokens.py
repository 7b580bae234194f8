"""
Token generation and hashing utilities.

Provides secure token operations for refresh tokens, reset tokens and
one-time passcodes. Tokens are high-entropy, so a fast SHA-256 digest is
enough for storage; the raw value is never persisted.
"""

import hashlib
import hmac
import secrets
import string
import uuid

from common.crypto.errors import CryptoError

_SHORT_CODE_ALPHABET = string.ascii_letters + string.digits


def _require_positive(length: int) -> None:
    if not isinstance(length, int) or isinstance(length, bool) or length <= 0:
        raise CryptoError("Length must be a positive integer")


def _require_str(value, name: str) -> None:
    if not isinstance(value, str):
        raise CryptoError(f"{name} must be a string")


class TokenHasher:
    """
    Handles token generation and hashing.
    """

    @staticmethod
    def generate_token(length: int = 64) -> str:
        """
        Generate a cryptographically secure URL-safe token.

        Args:
            length: Number of random bytes

        Returns:
            URL-safe base64 string
        """
        _require_positive(length)
        return secrets.token_urlsafe(length)

    @staticmethod
    def generate_random_hex(length: int = 32) -> str:
        """Generate ``length`` random bytes as a hex string (2x characters)."""
        _require_positive(length)
        return secrets.token_hex(length)

    @staticmethod
    def generate_otp(length: int = 6) -> str:
        """Generate a numeric one-time passcode."""
        _require_positive(length)
        return "".join(secrets.choice(string.digits) for _ in range(length))

    @staticmethod
    def generate_short_code(length: int = 8) -> str:
        """Generate an alphanumeric code for short links."""
        _require_positive(length)
        return "".join(secrets.choice(_SHORT_CODE_ALPHABET) for _ in range(length))

    @staticmethod
    def generate_uuid() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Create SHA-256 hash of a token.
        Used for secure storage (never store plain tokens).

        Args:
            token: Plain token string

        Returns:
            Hex-encoded SHA-256 hash
        """
        _require_str(token, "Token")
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    # OTPs are hashed the same way as tokens
    hash_otp = hash_token

    @staticmethod
    def create_hmac_signature(data: str, secret: str) -> str:
        """HMAC-SHA256 of ``data`` as hex."""
        _require_str(data, "Data")
        _require_str(secret, "Secret")
        if not secret:
            raise CryptoError("Secret must not be empty")
        return hmac.new(
            secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    @staticmethod
    def verify_hmac_signature(data: str, secret: str, signature: str) -> bool:
        """Constant-time comparison of ``signature`` against the expected HMAC."""
        _require_str(signature, "Signature")
        expected = TokenHasher.create_hmac_signature(data, secret)
        return hmac.compare_digest(expected, signature)
