"""
Crypto module - Secret and hash primitives.

- passwords: adaptive bcrypt hashing with SHA-256 pre-hashing
- tokens: random tokens/OTPs/short codes, SHA-256 token hashing, HMAC
- encryption: AES-256-GCM authenticated encryption

Every primitive raises CryptoError on malformed input.
"""

from common.crypto.errors import CryptoError
from common.crypto.passwords import PasswordHasher
from common.crypto.tokens import TokenHasher
from common.crypto.encryption import EncryptionService, EncryptedPayload

__all__ = [
    "CryptoError",
    "PasswordHasher",
    "TokenHasher",
    "EncryptionService",
    "EncryptedPayload",
]
