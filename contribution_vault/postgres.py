"""
PostgreSQL record store.

This module provides:
- SCHEMA_SQL: Tables for contributions, login logs and the user directory
- PostgresRecordStore: asyncpg-backed RecordStore
- create_schema: Apply SCHEMA_SQL

PII columns are TEXT holding ciphertext tokens; the database never receives
plaintext for them.
"""

from __future__ import annotations

from typing import Collection, List, Optional
from uuid import UUID

import asyncpg

from .errors import PersistenceError, RecordNotFoundError
from .models import DirectoryEntry, StoredContribution, StoredLoginAuditEntry
from .store import RecordStore

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS contributions (
    id              UUID PRIMARY KEY,
    user_id         UUID NOT NULL,
    gennervogt_id   UUID,
    amount          NUMERIC(12, 2) NOT NULL CHECK (amount > 0),
    first_name      TEXT NOT NULL,
    last_name       TEXT NOT NULL,
    email           TEXT NOT NULL,
    address         TEXT NOT NULL,
    city            TEXT NOT NULL,
    postal_code     TEXT NOT NULL,
    paid            BOOLEAN NOT NULL DEFAULT FALSE,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS contributions_gennervogt_idx
    ON contributions (gennervogt_id, created_at DESC);

CREATE TABLE IF NOT EXISTS login_logs (
    id              UUID PRIMARY KEY,
    user_id         UUID NOT NULL,
    ip_address      TEXT NOT NULL,
    success         BOOLEAN NOT NULL,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS login_logs_user_idx
    ON login_logs (user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS user_data (
    id              UUID PRIMARY KEY,
    email           TEXT NOT NULL
);
"""

_CONTRIBUTION_COLUMNS = """
    id, user_id, gennervogt_id, amount, first_name, last_name,
    email, address, city, postal_code, paid, created_at
"""

_LOGIN_COLUMNS = "id, user_id, ip_address, success, created_at"


class PostgresRecordStore(RecordStore):
    """
    PostgreSQL record store.

    Column names follow the existing database: ``user_id`` is the submitting
    account and ``gennervogt_id`` the credited field agent.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        """
        Initialize PostgreSQL store.

        Args:
            pool: asyncpg connection pool
        """
        self._pool = pool

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def insert_contribution(self, row: StoredContribution) -> None:
        query = f"""
            INSERT INTO contributions ({_CONTRIBUTION_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
        """
        try:
            await self._pool.execute(
                query,
                row.id,
                row.contributor_id,
                row.agent_id,
                row.amount,
                row.first_name,
                row.last_name,
                row.email,
                row.address,
                row.city,
                row.postal_code,
                row.paid,
                row.created_at,
            )
        except Exception as e:
            raise PersistenceError(f"Failed to insert contribution: {e}") from e

    async def replace_contribution(self, row: StoredContribution) -> None:
        query = """
            UPDATE contributions
            SET gennervogt_id = $2, amount = $3, first_name = $4, last_name = $5,
                email = $6, address = $7, city = $8, postal_code = $9
            WHERE id = $1
        """
        try:
            status = await self._pool.execute(
                query,
                row.id,
                row.agent_id,
                row.amount,
                row.first_name,
                row.last_name,
                row.email,
                row.address,
                row.city,
                row.postal_code,
            )
        except Exception as e:
            raise PersistenceError(f"Failed to update contribution: {e}") from e
        if self._affected(status) == 0:
            raise RecordNotFoundError(f"Contribution {row.id}")

    async def get_contribution(self, contribution_id: UUID) -> Optional[StoredContribution]:
        query = f"SELECT {_CONTRIBUTION_COLUMNS} FROM contributions WHERE id = $1"
        try:
            row = await self._pool.fetchrow(query, contribution_id)
        except Exception as e:
            raise PersistenceError(f"Failed to get contribution: {e}") from e
        return self._row_to_contribution(row) if row is not None else None

    async def fetch_contributions(
        self, agent_id: Optional[UUID] = None
    ) -> List[StoredContribution]:
        try:
            if agent_id is None:
                rows = await self._pool.fetch(
                    f"SELECT {_CONTRIBUTION_COLUMNS} FROM contributions "
                    "ORDER BY created_at DESC"
                )
            else:
                rows = await self._pool.fetch(
                    f"SELECT {_CONTRIBUTION_COLUMNS} FROM contributions "
                    "WHERE gennervogt_id = $1 ORDER BY created_at DESC",
                    agent_id,
                )
        except Exception as e:
            raise PersistenceError(f"Failed to fetch contributions: {e}") from e
        return [self._row_to_contribution(row) for row in rows]

    async def set_paid(self, contribution_ids: Collection[UUID], paid: bool) -> int:
        query = "UPDATE contributions SET paid = $2 WHERE id = ANY($1::uuid[])"
        try:
            status = await self._pool.execute(query, list(contribution_ids), paid)
        except Exception as e:
            raise PersistenceError(f"Failed to update paid status: {e}") from e
        return self._affected(status)

    async def delete_contributions(self, contribution_ids: Collection[UUID]) -> int:
        query = "DELETE FROM contributions WHERE id = ANY($1::uuid[])"
        try:
            status = await self._pool.execute(query, list(contribution_ids))
        except Exception as e:
            raise PersistenceError(f"Failed to delete contributions: {e}") from e
        return self._affected(status)

    async def insert_login_entry(self, row: StoredLoginAuditEntry) -> None:
        query = f"INSERT INTO login_logs ({_LOGIN_COLUMNS}) VALUES ($1, $2, $3, $4, $5)"
        try:
            await self._pool.execute(
                query, row.id, row.user_id, row.ip_address, row.success, row.created_at
            )
        except Exception as e:
            raise PersistenceError(f"Failed to insert login entry: {e}") from e

    async def replace_login_entry(self, row: StoredLoginAuditEntry) -> None:
        query = "UPDATE login_logs SET ip_address = $2 WHERE id = $1"
        try:
            status = await self._pool.execute(query, row.id, row.ip_address)
        except Exception as e:
            raise PersistenceError(f"Failed to update login entry: {e}") from e
        if self._affected(status) == 0:
            raise RecordNotFoundError(f"Login entry {row.id}")

    async def fetch_login_entries(
        self, user_id: Optional[UUID] = None, limit: Optional[int] = None
    ) -> List[StoredLoginAuditEntry]:
        # LIMIT NULL means no limit in PostgreSQL
        try:
            if user_id is None:
                rows = await self._pool.fetch(
                    f"SELECT {_LOGIN_COLUMNS} FROM login_logs "
                    "ORDER BY created_at DESC LIMIT $1",
                    limit,
                )
            else:
                rows = await self._pool.fetch(
                    f"SELECT {_LOGIN_COLUMNS} FROM login_logs "
                    "WHERE user_id = $1 ORDER BY created_at DESC LIMIT $2",
                    user_id,
                    limit,
                )
        except Exception as e:
            raise PersistenceError(f"Failed to fetch login entries: {e}") from e
        return [
            StoredLoginAuditEntry(
                id=row["id"],
                user_id=row["user_id"],
                ip_address=row["ip_address"],
                success=row["success"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def fetch_directory(self, user_ids: Collection[UUID]) -> List[DirectoryEntry]:
        query = "SELECT id, email FROM user_data WHERE id = ANY($1::uuid[])"
        try:
            rows = await self._pool.fetch(query, list(user_ids))
        except Exception as e:
            raise PersistenceError(f"Failed to fetch directory entries: {e}") from e
        return [
            DirectoryEntry(id=row["id"], display_email=row["email"])
            for row in rows
            if row["email"]
        ]

    @staticmethod
    def _affected(status: str) -> int:
        """Row count from an asyncpg command tag such as 'UPDATE 3'."""
        try:
            return int(status.rsplit(" ", 1)[-1])
        except (ValueError, AttributeError):
            return 0

    @staticmethod
    def _row_to_contribution(row: asyncpg.Record) -> StoredContribution:
        """Convert database row to StoredContribution."""
        return StoredContribution(
            id=row["id"],
            contributor_id=row["user_id"],
            agent_id=row["gennervogt_id"],
            amount=row["amount"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            address=row["address"],
            city=row["city"],
            postal_code=row["postal_code"],
            paid=row["paid"],
            created_at=row["created_at"],
        )


async def create_schema(pool: asyncpg.Pool) -> None:
    """Create tables and indexes if they do not exist."""
    try:
        await pool.execute(SCHEMA_SQL)
    except Exception as e:
        raise PersistenceError(f"Failed to create schema: {e}") from e
