"""Tests for the FieldEncryptor (Fernet-based profile encryption)."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from vitadash.core.storage.encryption import EncryptionError, FieldEncryptor

PROFILE = {
    "name": "Kim",
    "sex": "female",
    "age": 64,
    "weight_kg": 55.0,
    "diseases": ["골다공증", "빈혈"],
}


class TestProfileFields:
    def test_profile_survives_encryption(self, field_encryptor):
        token = field_encryptor.encrypt(PROFILE)
        assert "골다공증" not in token
        assert "Kim" not in token
        assert field_encryptor.decrypt(token) == PROFILE

    def test_same_profile_gives_fresh_token(self, field_encryptor):
        assert field_encryptor.encrypt(PROFILE) != field_encryptor.encrypt(PROFILE)

    def test_plain_values(self, field_encryptor):
        for value in (2556, 0.8, False, "종합비타민", ["bottle1", "bottle3"]):
            assert field_encryptor.decrypt(field_encryptor.encrypt(value)) == value

    def test_missing_profile_is_empty_token(self, field_encryptor):
        assert field_encryptor.encrypt(None) == ""
        for token in ("", None):
            assert field_encryptor.decrypt(token) is None

    def test_unserializable_profile_rejected(self, field_encryptor):
        with pytest.raises(EncryptionError, match="not JSON-serializable"):
            field_encryptor.encrypt({"diseases": {"고혈압"}})


class TestKeys:
    @pytest.mark.parametrize("key", ["", "   "])
    def test_blank_key(self, key):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor(key)

    def test_malformed_key(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            FieldEncryptor("ENCRYPTION_KEY=changeme")

    def test_generate_key_is_usable(self):
        generated = FieldEncryptor.generate_key()
        assert isinstance(generated, str)
        encryptor = FieldEncryptor(generated)
        assert encryptor.decrypt(encryptor.encrypt(PROFILE)) == PROFILE


class TestUnreadableTokens:
    def test_profile_from_other_device_key(self, field_encryptor):
        token = field_encryptor.encrypt(PROFILE)
        rotated = FieldEncryptor(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="invalid token"):
            rotated.decrypt(token)

    def test_tampered_token(self, field_encryptor):
        token = field_encryptor.encrypt(PROFILE)
        with pytest.raises(EncryptionError):
            field_encryptor.decrypt(token[:-4] + "AAAA")

    def test_token_of_non_json_payload(self, field_encryptor):
        fernet_key = Fernet.generate_key()
        raw = Fernet(fernet_key).encrypt(b"not json").decode()
        with pytest.raises(EncryptionError, match="not JSON"):
            FieldEncryptor(fernet_key.decode()).decrypt(raw)
