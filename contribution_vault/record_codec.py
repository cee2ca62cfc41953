"""
Record-level codecs.

This module provides:
- ContributionCodec: Converts contributions between display and storage form
- LoginAuditCodec: Same for login audit entries
- RowOutcome: Per-row decryption status
- DecryptFailurePolicy: What a repository does with rows that fail to decrypt

Every PII field is encrypted independently and bound to its record id and
field name, so a token copied to another row or column is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

import structlog

from .crypto import FieldCipher
from .errors import DecryptionError
from .models import (
    CONTRIBUTION_PII_FIELDS,
    LOGIN_PII_FIELDS,
    Contribution,
    LoginAuditEntry,
    StoredContribution,
    StoredLoginAuditEntry,
)

log = structlog.get_logger(__name__)

CONTRIBUTIONS_TABLE = "contributions"
LOGIN_LOGS_TABLE = "login_logs"


class DecryptFailurePolicy(Enum):
    """Handling of rows whose PII cannot be decrypted."""

    DISCARD_ROW = "discard_row"  # Drop the whole row, log it
    RAISE = "raise"  # Fail the whole operation

    def __str__(self) -> str:
        return self.value


@dataclass
class RowOutcome:
    """Result of decrypting one stored row."""

    record_id: UUID
    record: Optional[Contribution] = None
    field: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None

    @classmethod
    def success(cls, record: Contribution) -> RowOutcome:
        return cls(record_id=record.id, record=record)

    @classmethod
    def failure(cls, record_id: UUID, error: DecryptionError) -> RowOutcome:
        return cls(record_id=record_id, field=error.field, reason=error.reason)


def field_context(table: str, record_id: UUID, field_name: str) -> str:
    """Associated-data label binding a token to one column of one row."""
    return f"{table}/{record_id}/{field_name}"


def _as_dict(record: Any) -> Dict[str, Any]:
    return {f.name: getattr(record, f.name) for f in fields(record)}


class _FieldCodec:
    """Shared field-by-field encryption over a fixed set of PII columns."""

    table: str = ""
    pii_fields: Tuple[str, ...] = ()

    def __init__(self, cipher: FieldCipher) -> None:
        self._cipher = cipher

    @property
    def cipher(self) -> FieldCipher:
        return self._cipher

    def _encrypt_fields(self, record: Any) -> Dict[str, Any]:
        values = _as_dict(record)
        for name in self.pii_fields:
            values[name] = self._cipher.encrypt(
                values[name], field_context(self.table, record.id, name)
            )
        return values

    def _decrypt_fields(self, record: Any) -> Dict[str, Any]:
        values = _as_dict(record)
        for name in self.pii_fields:
            try:
                values[name] = self._cipher.decrypt(
                    values[name], field_context(self.table, record.id, name)
                )
            except DecryptionError as e:
                raise DecryptionError(e.reason, field=name, record_id=record.id) from e
        return values


class ContributionCodec(_FieldCodec):
    """Converts contributions between display form and storage form."""

    table = CONTRIBUTIONS_TABLE
    pii_fields = CONTRIBUTION_PII_FIELDS

    def to_storage_form(self, contribution: Contribution) -> StoredContribution:
        """
        Encrypt every PII field.

        Raises:
            KeyUnavailableError: If no key is configured
            EncryptionError: If a value cannot be encoded
        """
        return StoredContribution(**self._encrypt_fields(contribution))

    def to_display_form(self, stored: StoredContribution) -> Contribution:
        """
        Decrypt every PII field.

        Raises:
            KeyUnavailableError: If no key is configured
            DecryptionError: Naming the first field that failed
        """
        return Contribution(**self._decrypt_fields(stored))

    def decode_rows(self, rows: Iterable[StoredContribution]) -> List[RowOutcome]:
        """Decrypt each row, recording failures instead of raising."""
        outcomes: List[RowOutcome] = []
        for row in rows:
            try:
                outcomes.append(RowOutcome.success(self.to_display_form(row)))
            except DecryptionError as e:
                log.warning(
                    "row_decrypt_failed",
                    table=self.table,
                    record_id=str(row.id),
                    field=e.field,
                    reason=e.reason,
                )
                outcomes.append(RowOutcome.failure(row.id, e))
        return outcomes


class LoginAuditCodec(_FieldCodec):
    """Converts login audit entries between display form and storage form."""

    table = LOGIN_LOGS_TABLE
    pii_fields = LOGIN_PII_FIELDS

    def to_storage_form(self, entry: LoginAuditEntry) -> StoredLoginAuditEntry:
        return StoredLoginAuditEntry(**self._encrypt_fields(entry))

    def to_display_form(self, stored: StoredLoginAuditEntry) -> LoginAuditEntry:
        return LoginAuditEntry(**self._decrypt_fields(stored))
