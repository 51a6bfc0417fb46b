"""Fernet-based field encryption for raw health documents at rest.

Raw biometric day documents (``healthData``) are encrypted before they are
written to SQLite. Computed documents (component scores, bandwidth) stay
plain JSON so history queries can read them without the key.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts JSON-serializable data using Fernet.

    Usage::

        encryptor = FieldEncryptor(key="...")
        token = encryptor.encrypt({"rhr": 61.5})
        encryptor.decrypt(token)  # {"rhr": 61.5}
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key string. Generate with
                 :meth:`generate_key`.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a Fernet token string.

        Raises:
            EncryptionError: If serialization or encryption fails.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
            return self._fernet.encrypt(plaintext).decode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc

    def decrypt(self, token: str) -> Any:
        """Decrypt a Fernet token string back to a Python object.

        Raises:
            EncryptionError: If the token is invalid or decryption fails.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
            return json.loads(plaintext)
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64-encoded 32-byte Fernet key."""
        return Fernet.generate_key().decode("utf-8")
