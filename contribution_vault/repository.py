"""
Repositories wrapping the record store with encryption.

This module provides:
- ContributionRepository: create/update/get/list/set_paid_status/delete
- LoginAuditRepository: record and read login attempts

Write path: validate -> encrypt PII -> persist -> re-fetch -> decrypt.
Read path: fetch rows -> resolve directory -> decrypt PII -> attach identities.

Stored ciphertext is non-deterministic, so every search or filter runs over the
decrypted result of :meth:`ContributionRepository.list`.
"""

from __future__ import annotations

import asyncio
import ipaddress
from datetime import datetime, timezone
from typing import Collection, Dict, List, Optional
from uuid import UUID, uuid4

import structlog

from .directory import DirectoryResolver
from .errors import DecryptionError, RecordNotFoundError, ValidationError
from .models import (
    Caller,
    Contribution,
    ContributionInput,
    ContributionView,
    DirectoryEntry,
    LoginAuditEntry,
    StoredContribution,
)
from .record_codec import ContributionCodec, DecryptFailurePolicy, LoginAuditCodec, RowOutcome
from .store import RecordStore
from .validation import validate_contribution

log = structlog.get_logger(__name__)

DEFAULT_LOGIN_HISTORY_LIMIT = 10


def _in_scope(caller: Caller, row: StoredContribution) -> bool:
    return caller.is_admin or row.agent_id == caller.user_id


def _view(contribution: Contribution, directory: Dict[UUID, DirectoryEntry]) -> ContributionView:
    agent = None
    if contribution.agent_id is not None:
        agent = directory.get(contribution.agent_id, DirectoryEntry.unknown(contribution.agent_id))
    return ContributionView(
        contribution=contribution,
        contributor=directory.get(
            contribution.contributor_id, DirectoryEntry.unknown(contribution.contributor_id)
        ),
        agent=agent,
    )


class ContributionRepository:
    """
    Contribution operations with encrypt-before-write and decrypt-after-read.

    Agents (non-admin callers) only see the records credited to them;
    administrators see every record.
    """

    def __init__(
        self,
        store: RecordStore,
        codec: ContributionCodec,
        directory: DirectoryResolver,
        policy: DecryptFailurePolicy = DecryptFailurePolicy.DISCARD_ROW,
    ) -> None:
        """
        Initialize the repository.

        Args:
            store: Record store backend
            codec: Contribution codec holding the field cipher
            directory: Resolver for display identities
            policy: What list() does with rows that fail to decrypt
        """
        self._store = store
        self._codec = codec
        self._directory = directory
        self._policy = policy

    @property
    def policy(self) -> DecryptFailurePolicy:
        return self._policy

    async def create(self, data: ContributionInput, caller: Caller) -> ContributionView:
        """
        Validate, encrypt and store a new contribution.

        The agent defaults to the submitting caller. The returned view is
        decrypted from the stored row, not copied from the input.

        Raises:
            ValidationError: Before anything is encrypted or stored
            KeyUnavailableError: If no key is configured
            PersistenceError: If the store fails
        """
        clean = validate_contribution(data)

        contribution = Contribution(
            id=uuid4(),
            contributor_id=caller.user_id,
            agent_id=clean.agent_id if clean.agent_id is not None else caller.user_id,
            amount=clean.amount,
            first_name=clean.first_name,
            last_name=clean.last_name,
            email=clean.email,
            address=clean.address,
            city=clean.city,
            postal_code=clean.postal_code,
            paid=False,
            created_at=datetime.now(timezone.utc),
        )

        await self._store.insert_contribution(self._codec.to_storage_form(contribution))
        log.info(
            "contribution_created",
            contribution_id=str(contribution.id),
            contributor_id=str(caller.user_id),
        )

        return await self._refetch(contribution.id)

    async def update(
        self, contribution_id: UUID, data: ContributionInput, caller: Caller
    ) -> ContributionView:
        """
        Overwrite every editable field of a contribution.

        There is no partial merge: fields the caller wants to keep must be
        carried forward in ``data`` (see ContributionInput.from_contribution).
        All PII fields are re-encrypted together. An omitted ``agent_id``
        keeps the current agent; only admins may reassign a record.

        Raises:
            ValidationError: Before anything is encrypted or stored, including
                a non-admin attempt to change the agent
            RecordNotFoundError: If the record does not exist or is out of scope
            PersistenceError: If the store fails
        """
        clean = validate_contribution(data)

        current = await self._store.get_contribution(contribution_id)
        if current is None or not _in_scope(caller, current):
            raise RecordNotFoundError(f"Contribution {contribution_id}")

        agent_id = current.agent_id if clean.agent_id is None else clean.agent_id
        if agent_id != current.agent_id and not caller.is_admin:
            raise ValidationError({"agent_id": "Only administrators can reassign a contribution"})

        contribution = Contribution(
            id=current.id,
            contributor_id=current.contributor_id,
            agent_id=agent_id,
            amount=clean.amount,
            first_name=clean.first_name,
            last_name=clean.last_name,
            email=clean.email,
            address=clean.address,
            city=clean.city,
            postal_code=clean.postal_code,
            paid=current.paid,
            created_at=current.created_at,
        )

        await self._store.replace_contribution(self._codec.to_storage_form(contribution))
        log.info(
            "contribution_updated",
            contribution_id=str(contribution_id),
            editor_id=str(caller.user_id),
        )

        return await self._refetch(contribution_id)

    async def get(self, contribution_id: UUID, caller: Caller) -> ContributionView:
        """
        Fetch and decrypt one contribution.

        Raises:
            RecordNotFoundError: If the record does not exist or is out of scope
            DecryptionError: If any PII field fails to decrypt
        """
        row = await self._store.get_contribution(contribution_id)
        if row is None or not _in_scope(caller, row):
            raise RecordNotFoundError(f"Contribution {contribution_id}")
        return await self._to_view(row)

    async def list(self, caller: Caller) -> List[ContributionView]:
        """
        Fetch, decrypt and enrich every contribution visible to the caller.

        Newest first. Rows that fail to decrypt are dropped under
        DISCARD_ROW, or abort the call under RAISE. The list is returned only
        once every row has been processed.

        Raises:
            DecryptionError: Under the RAISE policy
            KeyUnavailableError: If no key is configured
            PersistenceError: If the store fails
        """
        outcomes = await self.list_outcomes(caller)

        failures = [o for o in outcomes if not o.ok]
        if failures:
            if self._policy is DecryptFailurePolicy.RAISE:
                first = failures[0]
                raise DecryptionError(
                    first.reason or "Decryption failed",
                    field=first.field,
                    record_id=first.record_id,
                )
            log.warning("rows_discarded", count=len(failures), total=len(outcomes))

        contributions = [o.record for o in outcomes if o.record is not None]
        directory = await self._directory.resolve(
            [c.contributor_id for c in contributions] + [c.agent_id for c in contributions]
        )
        return [_view(c, directory) for c in contributions]

    async def list_outcomes(self, caller: Caller) -> List[RowOutcome]:
        """
        Fetch and decrypt every visible contribution, reporting each row's status.

        Lets operators distinguish an empty result from corrupted rows.
        """
        rows = await self._fetch_scoped(caller)
        return await asyncio.to_thread(self._codec.decode_rows, rows)

    async def set_paid_status(self, contribution_ids: Collection[UUID], paid: bool) -> int:
        """
        Set ``paid`` on exactly the given contributions.

        Touches no PII and no other rows. Applying the current status again is
        harmless.

        Returns:
            Number of rows matched
        """
        ids = set(contribution_ids)
        if not ids:
            return 0
        matched = await self._store.set_paid(ids, paid)
        log.info("paid_status_updated", requested=len(ids), matched=matched, paid=paid)
        return matched

    async def delete(self, contribution_ids: Collection[UUID]) -> int:
        """
        Permanently delete the given contributions.

        Returns:
            Number of rows deleted
        """
        ids = set(contribution_ids)
        if not ids:
            return 0
        deleted = await self._store.delete_contributions(ids)
        log.info("contributions_deleted", requested=len(ids), deleted=deleted)
        return deleted

    async def _fetch_scoped(self, caller: Caller) -> List[StoredContribution]:
        if caller.is_admin:
            return await self._store.fetch_contributions()
        return await self._store.fetch_contributions(agent_id=caller.user_id)

    async def _refetch(self, contribution_id: UUID) -> ContributionView:
        row = await self._store.get_contribution(contribution_id)
        if row is None:
            raise RecordNotFoundError(f"Contribution {contribution_id} missing after write")
        return await self._to_view(row)

    async def _to_view(self, row: StoredContribution) -> ContributionView:
        contribution = self._codec.to_display_form(row)
        directory = await self._directory.resolve([row.contributor_id, row.agent_id])
        return _view(contribution, directory)


class LoginAuditRepository:
    """Login attempts with encrypted IP addresses."""

    def __init__(self, store: RecordStore, codec: LoginAuditCodec) -> None:
        self._store = store
        self._codec = codec

    async def record(self, user_id: UUID, ip_address: str, success: bool) -> LoginAuditEntry:
        """
        Store a login attempt.

        Raises:
            ValidationError: If ip_address is not an IPv4/IPv6 address
        """
        try:
            normalized = str(ipaddress.ip_address(ip_address.strip()))
        except (ValueError, AttributeError):
            raise ValidationError({"ip_address": "Invalid IP address"})

        entry = LoginAuditEntry(
            id=uuid4(),
            user_id=user_id,
            ip_address=normalized,
            success=success,
            created_at=datetime.now(timezone.utc),
        )
        await self._store.insert_login_entry(self._codec.to_storage_form(entry))
        log.info("login_recorded", user_id=str(user_id), success=success)
        return entry

    async def recent(
        self, user_id: UUID, limit: Optional[int] = DEFAULT_LOGIN_HISTORY_LIMIT
    ) -> List[LoginAuditEntry]:
        """Most recent login attempts of a user, newest first.

        Entries that fail to decrypt are left out.
        """
        rows = await self._store.fetch_login_entries(user_id=user_id, limit=limit)
        entries: List[LoginAuditEntry] = []
        for row in rows:
            try:
                entries.append(self._codec.to_display_form(row))
            except DecryptionError as e:
                log.warning(
                    "row_decrypt_failed",
                    table="login_logs",
                    record_id=str(row.id),
                    field=e.field,
                    reason=e.reason,
                )
        return entries
