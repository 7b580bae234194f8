"""
Adaptive password hashing.

Passwords are pre-hashed with SHA-256 before bcrypt. This handles
bcrypt's 72-byte limit and ensures consistent behavior across all
password lengths.

Example:
    hasher = PasswordHasher(rounds=12)
    hashed = hasher.hash_password("S3cure-pass")
    assert hasher.verify_password("S3cure-pass", hashed)
"""

import base64
import hashlib
from typing import Optional

import bcrypt as bcrypt_lib

from common.crypto.errors import CryptoError

# Range accepted by bcrypt.gensalt()
MIN_ROUNDS = 4
MAX_ROUNDS = 31


class PasswordHasher:
    """bcrypt password hashing with a configurable cost factor."""

    def __init__(self, rounds: int = 12):
        if not isinstance(rounds, int) or not MIN_ROUNDS <= rounds <= MAX_ROUNDS:
            raise CryptoError(
                f"bcrypt rounds must be an integer between {MIN_ROUNDS} and {MAX_ROUNDS}"
            )
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        return self._rounds

    @staticmethod
    def _prehash_password(password: str) -> bytes:
        if not isinstance(password, str):
            raise CryptoError("Password must be a string")
        sha256_hash = hashlib.sha256(password.encode("utf-8")).digest()
        return base64.b64encode(sha256_hash)

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt with SHA-256 pre-hashing."""
        prehashed = self._prehash_password(password)
        salt = bcrypt_lib.gensalt(rounds=self._rounds)
        return bcrypt_lib.hashpw(prehashed, salt).decode("utf-8")

    def verify_password(self, password: str, hashed: Optional[str]) -> bool:
        """
        Verify a password against its hash.

        Accounts without a password (phone-OTP provisioned) never match.

        Raises:
            CryptoError: If the stored hash is not a bcrypt hash
        """
        if not hashed:
            return False

        prehashed = self._prehash_password(password)
        try:
            return bcrypt_lib.checkpw(prehashed, hashed.encode("utf-8"))
        except ValueError as e:
            raise CryptoError(f"Malformed password hash: {e}") from e
