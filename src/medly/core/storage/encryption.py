"""Fernet-based field encryption for symptom notes at rest.

Free-text notes are the one log field that routinely carries PII, so they
are encrypted before writing to SQLite. Structured fields (symptom type,
severity, phase, tags) stay in the clear for indexed window queries.
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
    """Encrypts and decrypts JSON-serializable values with Fernet.

    Usage::

        encryptor = FieldEncryptor(key=FieldEncryptor.generate_key())
        token = encryptor.encrypt("woke up with cramps")
        encryptor.decrypt(token)  # "woke up with cramps"
    """

    def __init__(self, key: str) -> None:
        """Bind the encryptor to the store's key.

        Args:
            key: URL-safe base64 Fernet key, normally ``ENCRYPTION_KEY``.

        Raises:
            EncryptionError: The key is blank or not a valid Fernet key. The
                server then falls back to an in-memory store.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str:
        """Seal a note (or any JSON value) for the ``notes_enc`` column.

        Args:
            data: The note text. ``None`` means the log has no note.

        Returns:
            The Fernet token as text, or ``""`` for a missing note. Each call
            yields a different token for the same note.

        Raises:
            EncryptionError: The value cannot be serialized to JSON.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str) -> Any:
        """Open a ``notes_enc`` value written by :meth:`encrypt`.

        Args:
            token: Stored token; an empty value reads back as no note.

        Returns:
            The original note, or ``None``.

        Raises:
            EncryptionError: The token is corrupt or was sealed under another
                key. Repositories surface this as ``RepositoryError``.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """Create a fresh key, e.g. for the ephemeral in-memory store.

        Returns:
            A 44-character URL-safe base64 key.
        """
        return Fernet.generate_key().decode("utf-8")
