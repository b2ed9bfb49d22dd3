"""Credential cipher for stored connection configs."""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class CredentialError(ValueError):
    """Raised when a key or stored token cannot be used."""


class FernetCredentialCipher:
    """Encrypt and decrypt connection configs as Fernet tokens."""

    def __init__(self, key: str | bytes | None) -> None:
        self._key = key
        self._cipher: Fernet | None = None

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")

    def encrypt_config(self, config: dict[str, Any]) -> str:
        cipher = self._ensure_cipher()
        payload = json.dumps(config, sort_keys=True).encode("utf-8")
        return cipher.encrypt(payload).decode("utf-8")

    def decrypt_config(self, token: str) -> dict[str, Any]:
        cipher = self._ensure_cipher()
        try:
            raw = cipher.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise CredentialError("Failed to decrypt connection config.") from exc
        try:
            config = json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise CredentialError("Decrypted connection config is not valid JSON.") from exc
        if not isinstance(config, dict):
            raise CredentialError("Decrypted connection config must be an object.")
        return config

    def _ensure_cipher(self) -> Fernet:
        if self._cipher is not None:
            return self._cipher
        if not self._key:
            raise CredentialError(
                "QUERYMESH_CREDENTIALS_KEY must be set to use encrypted connection configs."
            )
        key = self._key
        if isinstance(key, str):
            key = key.encode("utf-8")
        try:
            self._cipher = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise CredentialError(
                "Invalid QUERYMESH_CREDENTIALS_KEY. Use a Fernet-compatible base64 key."
            ) from exc
        return self._cipher
