"""Unit tests for the secret and hash primitives."""

import pytest

from common.crypto import CryptoError, EncryptionService, PasswordHasher, TokenHasher


# ─────────────────────────────────────────────────────────────────
# PasswordHasher
# ─────────────────────────────────────────────────────────────────


class TestPasswordHasher:
    def test_hash_then_verify(self):
        hasher = PasswordHasher(rounds=4)
        hashed = hasher.hash_password("S3cure-pass")

        assert hashed.startswith("$2")
        assert hasher.verify_password("S3cure-pass", hashed) is True
        assert hasher.verify_password("wrong-pass", hashed) is False

    def test_same_password_hashes_differently(self):
        hasher = PasswordHasher(rounds=4)
        assert hasher.hash_password("S3cure-pass") != hasher.hash_password("S3cure-pass")

    def test_long_passwords_are_not_truncated(self):
        hasher = PasswordHasher(rounds=4)
        base = "A1" * 40
        hashed = hasher.hash_password(base + "x")

        # bcrypt alone would only look at the first 72 bytes
        assert hasher.verify_password(base + "y", hashed) is False

    def test_missing_hash_never_matches(self):
        hasher = PasswordHasher(rounds=4)
        assert hasher.verify_password("anything", None) is False
        assert hasher.verify_password("anything", "") is False

    def test_malformed_hash_raises(self):
        hasher = PasswordHasher(rounds=4)
        with pytest.raises(CryptoError):
            hasher.verify_password("anything", "not-a-bcrypt-hash")

    @pytest.mark.parametrize("rounds", [3, 32, "12"])
    def test_rejects_invalid_rounds(self, rounds):
        with pytest.raises(CryptoError):
            PasswordHasher(rounds=rounds)


# ─────────────────────────────────────────────────────────────────
# TokenHasher
# ─────────────────────────────────────────────────────────────────


class TestTokenHasher:
    def test_hash_token_is_sha256_hex(self):
        digest = TokenHasher.hash_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_hash_otp_matches_hash_token(self):
        assert TokenHasher.hash_otp("123456") == TokenHasher.hash_token("123456")

    def test_generate_otp_is_numeric(self):
        code = TokenHasher.generate_otp(6)
        assert len(code) == 6
        assert code.isdigit()

    def test_generate_short_code_is_alphanumeric(self):
        code = TokenHasher.generate_short_code(10)
        assert len(code) == 10
        assert code.isalnum()

    def test_random_hex_length(self):
        assert len(TokenHasher.generate_random_hex(16)) == 32

    def test_tokens_are_unique(self):
        assert TokenHasher.generate_token() != TokenHasher.generate_token()

    @pytest.mark.parametrize("length", [0, -1, True])
    def test_rejects_non_positive_length(self, length):
        with pytest.raises(CryptoError):
            TokenHasher.generate_otp(length)

    def test_hash_token_rejects_non_string(self):
        with pytest.raises(CryptoError):
            TokenHasher.hash_token(None)

    def test_hmac_signature_verifies(self):
        signature = TokenHasher.create_hmac_signature("payload", "secret")
        assert TokenHasher.verify_hmac_signature("payload", "secret", signature) is True
        assert TokenHasher.verify_hmac_signature("payload", "other", signature) is False

    def test_hmac_rejects_empty_secret(self):
        with pytest.raises(CryptoError):
            TokenHasher.create_hmac_signature("payload", "")


# ─────────────────────────────────────────────────────────────────
# EncryptionService
# ─────────────────────────────────────────────────────────────────


class TestEncryptionService:
    @pytest.fixture
    def service(self):
        return EncryptionService(EncryptionService.generate_key())

    def test_decrypts_what_it_encrypts(self, service):
        payload = service.encrypt("twilio-auth-token")
        assert set(payload) == {"iv", "encrypted", "authTag"}
        assert service.decrypt(payload) == "twilio-auth-token"

    def test_fresh_nonce_per_call(self, service):
        assert service.encrypt("same")["iv"] != service.encrypt("same")["iv"]

    def test_tampered_ciphertext_fails_closed(self, service):
        payload = service.encrypt("secret")
        flipped = format(int(payload["encrypted"][:2], 16) ^ 0x01, "02x")
        payload["encrypted"] = flipped + payload["encrypted"][2:]

        with pytest.raises(CryptoError):
            service.decrypt(payload)

    def test_wrong_key_fails(self, service):
        payload = service.encrypt("secret")
        other = EncryptionService(EncryptionService.generate_key())

        with pytest.raises(CryptoError):
            other.decrypt(payload)

    def test_malformed_payload(self, service):
        with pytest.raises(CryptoError):
            service.decrypt({"iv": "zz", "encrypted": "", "authTag": ""})

    @pytest.mark.parametrize("key", ["abcd", "g" * 64, None])
    def test_rejects_bad_key(self, key):
        with pytest.raises(CryptoError):
            EncryptionService(key)
