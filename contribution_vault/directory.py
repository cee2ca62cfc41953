"""Batch resolution of user ids to display identities."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Set
from uuid import UUID

import structlog

from .errors import DirectoryLookupGap
from .models import DirectoryEntry
from .store import RecordStore

log = structlog.get_logger(__name__)


class DirectoryResolver:
    """
    Resolves every user id a screen needs with a single directory lookup.

    Ids missing from the directory resolve to the "Unknown" sentinel so that
    partial directory data never blocks display of financial data.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def resolve(
        self, user_ids: Iterable[Optional[UUID]], strict: bool = False
    ) -> Dict[UUID, DirectoryEntry]:
        """
        Resolve user ids to directory entries.

        Args:
            user_ids: Ids to resolve; None values are ignored
            strict: Raise instead of substituting the sentinel

        Returns:
            Mapping with an entry for every requested id

        Raises:
            DirectoryLookupGap: If strict and any id is missing
            PersistenceError: If the directory lookup fails
        """
        wanted: Set[UUID] = {i for i in user_ids if i is not None}
        if not wanted:
            return {}

        found = {entry.id: entry for entry in await self._store.fetch_directory(wanted)}

        missing = wanted - found.keys()
        if missing:
            if strict:
                raise DirectoryLookupGap(missing)
            log.warning("directory_lookup_gap", missing=len(missing), requested=len(wanted))
            for user_id in missing:
                found[user_id] = DirectoryEntry.unknown(user_id)

        return found
