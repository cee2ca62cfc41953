"""
Record store abstractions.

This module provides:
- RecordStore: Abstract protocol for record store backends
- InMemoryRecordStore: In-memory implementation for tests and examples

Stores only ever see storage-form records; PII columns arrive and leave as
ciphertext tokens.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Collection, Dict, List, Optional
from uuid import UUID

from .errors import PersistenceError, RecordNotFoundError
from .models import DirectoryEntry, StoredContribution, StoredLoginAuditEntry

# Columns overwritten by an edit; id, contributor, paid and created_at are not
EDITABLE_COLUMNS = (
    "agent_id",
    "amount",
    "first_name",
    "last_name",
    "email",
    "address",
    "city",
    "postal_code",
)


class RecordStore(ABC):
    """
    Abstract storage interface for contributions, login logs and the
    user directory.

    All methods are async to support both in-memory and database backends.
    """

    @abstractmethod
    async def insert_contribution(self, row: StoredContribution) -> None:
        """Insert a new contribution row."""
        ...

    @abstractmethod
    async def replace_contribution(self, row: StoredContribution) -> None:
        """Overwrite the editable columns of an existing row."""
        ...

    @abstractmethod
    async def get_contribution(self, contribution_id: UUID) -> Optional[StoredContribution]:
        """Get a contribution by ID."""
        ...

    @abstractmethod
    async def fetch_contributions(
        self, agent_id: Optional[UUID] = None
    ) -> List[StoredContribution]:
        """Get contributions, newest first, optionally only one agent's."""
        ...

    @abstractmethod
    async def set_paid(self, contribution_ids: Collection[UUID], paid: bool) -> int:
        """Set the paid flag on exactly the given rows. Returns rows matched."""
        ...

    @abstractmethod
    async def delete_contributions(self, contribution_ids: Collection[UUID]) -> int:
        """Delete the given rows. Returns rows deleted."""
        ...

    @abstractmethod
    async def insert_login_entry(self, row: StoredLoginAuditEntry) -> None:
        """Insert a login audit row."""
        ...

    @abstractmethod
    async def replace_login_entry(self, row: StoredLoginAuditEntry) -> None:
        """Overwrite the ip_address column of an existing login audit row."""
        ...

    @abstractmethod
    async def fetch_login_entries(
        self, user_id: Optional[UUID] = None, limit: Optional[int] = None
    ) -> List[StoredLoginAuditEntry]:
        """Get login audit rows, newest first."""
        ...

    @abstractmethod
    async def fetch_directory(self, user_ids: Collection[UUID]) -> List[DirectoryEntry]:
        """Get directory entries for the given user ids (missing ids omitted)."""
        ...


class InMemoryRecordStore(RecordStore):
    """
    In-memory record store for tests and examples.

    Uses asyncio.Lock for safe concurrent access. Rows are copied on the way
    in and out so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._contributions: Dict[UUID, StoredContribution] = {}
        self._login_entries: Dict[UUID, StoredLoginAuditEntry] = {}
        self._directory: Dict[UUID, DirectoryEntry] = {}
        self._lock = asyncio.Lock()

    def add_directory_entry(self, entry: DirectoryEntry) -> None:
        """Seed the read-only directory view."""
        self._directory[entry.id] = entry

    async def insert_contribution(self, row: StoredContribution) -> None:
        async with self._lock:
            if row.id in self._contributions:
                raise PersistenceError(f"Contribution {row.id} already exists")
            self._contributions[row.id] = replace(row)

    async def replace_contribution(self, row: StoredContribution) -> None:
        async with self._lock:
            current = self._contributions.get(row.id)
            if current is None:
                raise RecordNotFoundError(f"Contribution {row.id}")
            changes = {name: getattr(row, name) for name in EDITABLE_COLUMNS}
            self._contributions[row.id] = replace(current, **changes)

    async def get_contribution(self, contribution_id: UUID) -> Optional[StoredContribution]:
        async with self._lock:
            row = self._contributions.get(contribution_id)
            return replace(row) if row is not None else None

    async def fetch_contributions(
        self, agent_id: Optional[UUID] = None
    ) -> List[StoredContribution]:
        async with self._lock:
            rows = [
                replace(row)
                for row in self._contributions.values()
                if agent_id is None or row.agent_id == agent_id
            ]
        # Ties on created_at keep the latest insert first
        rows.reverse()
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows

    async def set_paid(self, contribution_ids: Collection[UUID], paid: bool) -> int:
        async with self._lock:
            matched = 0
            for contribution_id in set(contribution_ids):
                row = self._contributions.get(contribution_id)
                if row is None:
                    continue
                self._contributions[contribution_id] = replace(row, paid=paid)
                matched += 1
            return matched

    async def delete_contributions(self, contribution_ids: Collection[UUID]) -> int:
        async with self._lock:
            deleted = 0
            for contribution_id in set(contribution_ids):
                if self._contributions.pop(contribution_id, None) is not None:
                    deleted += 1
            return deleted

    async def insert_login_entry(self, row: StoredLoginAuditEntry) -> None:
        async with self._lock:
            if row.id in self._login_entries:
                raise PersistenceError(f"Login entry {row.id} already exists")
            self._login_entries[row.id] = replace(row)

    async def replace_login_entry(self, row: StoredLoginAuditEntry) -> None:
        async with self._lock:
            current = self._login_entries.get(row.id)
            if current is None:
                raise RecordNotFoundError(f"Login entry {row.id}")
            self._login_entries[row.id] = replace(current, ip_address=row.ip_address)

    async def fetch_login_entries(
        self, user_id: Optional[UUID] = None, limit: Optional[int] = None
    ) -> List[StoredLoginAuditEntry]:
        async with self._lock:
            rows = [
                replace(row)
                for row in self._login_entries.values()
                if user_id is None or row.user_id == user_id
            ]
        # Ties on created_at keep the latest insert first
        rows.reverse()
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[:limit] if limit is not None else rows

    async def fetch_directory(self, user_ids: Collection[UUID]) -> List[DirectoryEntry]:
        async with self._lock:
            return [self._directory[i] for i in set(user_ids) if i in self._directory]
