"""
Re-encryption of stored PII under the active key.

After a new key is made active (and the old one listed as retired), run
reencrypt_all() until it reports nothing left to rotate; the retired key can
then be removed from configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import structlog

from .crypto import FieldCipher
from .errors import DecryptionError
from .record_codec import ContributionCodec, LoginAuditCodec
from .store import RecordStore

log = structlog.get_logger(__name__)


@dataclass
class ReencryptResult:
    """Result of a re-encryption pass."""

    contributions_reencrypted: int = 0
    login_entries_reencrypted: int = 0
    failed: int = 0

    def __str__(self) -> str:
        return (
            f"{self.contributions_reencrypted} contributions, "
            f"{self.login_entries_reencrypted} login entries re-encrypted, "
            f"{self.failed} failed"
        )


def _needs_rotation(cipher: FieldCipher, tokens: Iterable[str], active_key_id: str) -> bool:
    return any(cipher.key_id_of(token) != active_key_id for token in tokens)


async def reencrypt_all(
    store: RecordStore,
    contribution_codec: ContributionCodec,
    login_codec: LoginAuditCodec,
) -> ReencryptResult:
    """
    Re-encrypt every row whose PII is not under the active key.

    Rows that fail to decrypt are counted and left untouched.

    Returns:
        ReencryptResult with counts
    """
    result = ReencryptResult()
    cipher = contribution_codec.cipher
    active_key_id = cipher.key_provider.current_key().key_id

    for row in await store.fetch_contributions():
        tokens = [getattr(row, name) for name in contribution_codec.pii_fields]
        if not _needs_rotation(cipher, tokens, active_key_id):
            continue
        try:
            contribution = contribution_codec.to_display_form(row)
        except DecryptionError as e:
            log.error("reencrypt_failed", table="contributions", record_id=str(row.id), field=e.field)
            result.failed += 1
            continue
        await store.replace_contribution(contribution_codec.to_storage_form(contribution))
        result.contributions_reencrypted += 1

    for entry in await store.fetch_login_entries():
        if not _needs_rotation(login_codec.cipher, [entry.ip_address], active_key_id):
            continue
        try:
            display = login_codec.to_display_form(entry)
        except DecryptionError as e:
            log.error("reencrypt_failed", table="login_logs", record_id=str(entry.id), field=e.field)
            result.failed += 1
            continue
        await store.replace_login_entry(login_codec.to_storage_form(display))
        result.login_entries_reencrypted += 1

    log.info(
        "reencrypt_finished",
        active_key_id=active_key_id,
        contributions=result.contributions_reencrypted,
        login_entries=result.login_entries_reencrypted,
        failed=result.failed,
    )
    return result
