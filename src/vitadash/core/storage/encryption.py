"""Fernet encryption for profile data at rest.

Profiles hold health conditions (selected diseases, body measurements), so
they are stored as encrypted JSON. Pill configuration, commands and
nutrition logs carry no personal health data and stay in plain columns.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when a key is unusable or a value cannot be encrypted/decrypted."""


class FieldEncryptor:
    """Round-trips JSON-serializable values through Fernet tokens.

    Usage::

        encryptor = FieldEncryptor(FieldEncryptor.generate_key())
        token = encryptor.encrypt({"diseases": ["hypertension"]})
        encryptor.decrypt(token)  # {"diseases": ["hypertension"]}
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A urlsafe base64 Fernet key, e.g. from ``generate_key()``.
                Surrounding whitespace from .env files is ignored.

        Raises:
            EncryptionError: If ``key`` is blank or not a valid Fernet key.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.strip().encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a Fernet token string.

        Args:
            data: Profile dict or any JSON-serializable value. None encrypts
                to the empty string.

        Returns:
            Fernet token as a string.

        Raises:
            EncryptionError: If ``data`` is not JSON-serializable.
        """
        if data is None:
            return ""
        try:
            payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Value is not JSON-serializable: {exc}") from exc
        return self._fernet.encrypt(payload.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str | None) -> Any:
        """Decrypt a Fernet token back to the stored value.

        Args:
            token: Token from ``encrypt``; empty or None means no value.

        Returns:
            The original value, or None for an empty token.

        Raises:
            EncryptionError: Wrong key, tampered token, or corrupt payload.
        """
        if not token:
            return None
        try:
            payload = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise EncryptionError(f"Decrypted payload is not JSON: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """New random Fernet key, suitable for ``ENCRYPTION_KEY``."""
        return Fernet.generate_key().decode("utf-8")
