"""
Authenticated symmetric encryption.

Uses AES-256-GCM with a random nonce per call. Decryption fails closed:
a tampered ciphertext, IV or tag raises CryptoError instead of returning
garbage or None.
"""

import logging
import secrets
from typing import TypedDict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from common.crypto.errors import CryptoError

logger = logging.getLogger(__name__)


class EncryptedPayload(TypedDict):
    """Hex-encoded pieces of an AES-GCM ciphertext."""
    iv: str
    encrypted: str
    authTag: str


class EncryptionService:
    """
    Encrypts and decrypts short secrets using AES-256-GCM.
    """

    NONCE_SIZE = 12
    KEY_SIZE = 32

    def __init__(self, encryption_key: str):
        """
        Initialize EncryptionService.

        Args:
            encryption_key: 32-byte key as 64 hex characters

        Raises:
            CryptoError: If the key is not valid hex or has the wrong length
        """
        if not isinstance(encryption_key, str):
            raise CryptoError("Encryption key must be a hex string")
        try:
            key_bytes = bytes.fromhex(encryption_key)
        except ValueError as e:
            raise CryptoError("Encryption key must be hex encoded") from e
        if len(key_bytes) != self.KEY_SIZE:
            raise CryptoError("Encryption key must be 32 bytes (64 hex characters)")
        self._key = key_bytes

    def encrypt(self, plaintext: str) -> EncryptedPayload:
        """
        Encrypt a string.

        Args:
            plaintext: Text to encrypt

        Returns:
            EncryptedPayload with hex iv, ciphertext and auth tag
        """
        if not isinstance(plaintext, str):
            raise CryptoError("Plaintext must be a string")

        iv = secrets.token_bytes(self.NONCE_SIZE)
        encryptor = Cipher(algorithms.AES(self._key), modes.GCM(iv)).encryptor()
        ciphertext = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()

        return EncryptedPayload(
            iv=iv.hex(),
            encrypted=ciphertext.hex(),
            authTag=encryptor.tag.hex(),
        )

    def decrypt(self, payload: EncryptedPayload) -> str:
        """
        Decrypt a payload produced by encrypt().

        Raises:
            CryptoError: If the payload is malformed or fails authentication
        """
        try:
            iv = bytes.fromhex(payload["iv"])
            ciphertext = bytes.fromhex(payload["encrypted"])
            tag = bytes.fromhex(payload["authTag"])
        except (KeyError, TypeError, ValueError) as e:
            raise CryptoError("Malformed encrypted payload") from e

        if len(iv) != self.NONCE_SIZE or len(tag) != 16:
            raise CryptoError("Malformed encrypted payload")

        decryptor = Cipher(algorithms.AES(self._key), modes.GCM(iv, tag)).decryptor()
        try:
            plaintext = decryptor.update(ciphertext) + decryptor.finalize()
        except InvalidTag as e:
            logger.warning("Decryption failed: authentication tag mismatch")
            raise CryptoError("Decryption failed: authentication tag mismatch") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError("Decrypted data is not valid UTF-8") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new 32-byte encryption key as hex string."""
        return secrets.token_hex(EncryptionService.KEY_SIZE)
