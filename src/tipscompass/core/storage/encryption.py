"""Encryption of check-in documents at rest.

Only the submitted document is encrypted. The ``patient_id`` and ``date``
index columns stay in the clear so the history query can filter and order
without decrypting every row.

Keys rotate by moving the old key into ``previous_keys``: documents written
under it stay readable, and new writes use the current key.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised for a bad key or a document that cannot be sealed or opened."""


def _load_key(key: str, label: str) -> Fernet:
    if not key or not key.strip():
        raise EncryptionError(f"{label} must not be empty")
    try:
        return Fernet(key.strip().encode())
    except ValueError as exc:
        raise EncryptionError(f"Invalid {label.lower()}: {exc}") from exc


class FieldEncryptor:
    """Seals check-in documents into Fernet tokens and opens them again.

    Usage::

        encryptor = FieldEncryptor(settings.encryption_key)
        token = encryptor.encrypt_document({"patientId": "patient_001", "fever": False})
        encryptor.decrypt_document(token)
    """

    def __init__(self, key: str, *, previous_keys: Iterable[str] = ()) -> None:
        """
        Args:
            key: Current Fernet key; every new token is written with it.
            previous_keys: Retired keys still accepted for reading.

        Raises:
            EncryptionError: If any key is empty or malformed.
        """
        primary = _load_key(key, "Encryption key")
        retired = [_load_key(k, "Previous encryption key") for k in previous_keys]
        self._fernet = MultiFernet([primary, *retired])
        if retired:
            logger.info("Field encryption accepts %d retired key(s) for reading", len(retired))

    def encrypt_document(self, document: Mapping[str, Any]) -> str:
        """Serialize a document to compact JSON and encrypt it.

        Raises:
            EncryptionError: If the document is not JSON-serializable.
        """
        try:
            plaintext = json.dumps(dict(document), separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt_document(self, token: str) -> dict[str, Any]:
        """Decrypt a token written by ``encrypt_document``. An empty token is ``{}``.

        Raises:
            EncryptionError: If no known key opens the token, or it does not
                hold a JSON object.
        """
        if not token:
            return {}
        try:
            document = json.loads(self._fernet.decrypt(token.encode("utf-8")))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc
        if not isinstance(document, dict):
            raise EncryptionError("Decryption failed: token does not hold a document")
        return document

    def rotate(self, token: str) -> str:
        """Re-encrypt a token under the current key."""
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """A fresh Fernet key, URL-safe base64."""
        return Fernet.generate_key().decode("utf-8")
