"""
Exception classes for contribution vault operations.

All errors derive from VaultError so callers can catch the whole family at the
boundary of a request.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional
from uuid import UUID


class VaultError(Exception):
    """Base exception for all contribution vault operations."""

    pass


class ValidationError(VaultError):
    """Submitted input is malformed or incomplete.

    Raised before anything is encrypted or persisted.
    """

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid input: {fields}")


class CryptoError(VaultError):
    """Cryptographic operation failed."""

    pass


class EncryptionError(CryptoError):
    """Plaintext could not be encrypted (encoding error)."""

    pass


class DecryptionError(CryptoError):
    """Ciphertext is malformed, tampered with, or bound to another record."""

    def __init__(
        self,
        message: str = "Decryption failed",
        field: Optional[str] = None,
        record_id: Optional[UUID] = None,
    ) -> None:
        self.reason = message
        self.field = field
        self.record_id = record_id
        if field is not None:
            message = f"{message} (field={field}, record={record_id})"
        super().__init__(message)


class KeyUnavailableError(VaultError):
    """No usable encryption key is configured."""

    pass


class DirectoryLookupGap(VaultError):
    """One or more user ids are missing from the directory."""

    def __init__(self, missing: Iterable[UUID]) -> None:
        self.missing = frozenset(missing)
        super().__init__(f"{len(self.missing)} user id(s) missing from directory")


class PersistenceError(VaultError):
    """Record store error (database, in-memory, etc.)."""

    pass


class RecordNotFoundError(PersistenceError):
    """Record not found in storage."""

    pass


class ConfigError(VaultError):
    """Configuration error."""

    pass


class ExportError(VaultError):
    """Export was handed records that are not in display form."""

    pass
