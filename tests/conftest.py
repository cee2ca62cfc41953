"""
Pytest configuration and fixtures for contribution vault tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator, Callable, Optional
from uuid import UUID, uuid4

import asyncpg
import pytest
from dotenv import load_dotenv

from contribution_vault import (
    Caller,
    Contribution,
    ContributionCodec,
    ContributionInput,
    ContributionRepository,
    ContributionView,
    DirectoryEntry,
    DirectoryResolver,
    FieldCipher,
    InMemoryRecordStore,
    LoginAuditCodec,
    LoginAuditRepository,
    PostgresRecordStore,
    SecureKey,
    StaticKeyProvider,
    create_schema,
)


@pytest.fixture
def key_provider() -> StaticKeyProvider:
    """Single-key provider with a fresh random key."""
    return StaticKeyProvider(SecureKey.generate())


@pytest.fixture
def cipher(key_provider: StaticKeyProvider) -> FieldCipher:
    return FieldCipher(key_provider)


@pytest.fixture
def codec(cipher: FieldCipher) -> ContributionCodec:
    return ContributionCodec(cipher)


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    """Create an in-memory store instance for testing."""
    return InMemoryRecordStore()


@pytest.fixture
def agent() -> Caller:
    return Caller(user_id=uuid4())


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id=uuid4(), is_admin=True)


@pytest.fixture
def repository(
    memory_store: InMemoryRecordStore,
    codec: ContributionCodec,
    agent: Caller,
    admin: Caller,
) -> ContributionRepository:
    memory_store.add_directory_entry(DirectoryEntry(id=agent.user_id, display_email="agent@example.org"))
    memory_store.add_directory_entry(DirectoryEntry(id=admin.user_id, display_email="admin@example.org"))
    return ContributionRepository(memory_store, codec, DirectoryResolver(memory_store))


@pytest.fixture
def login_repository(
    memory_store: InMemoryRecordStore, cipher: FieldCipher
) -> LoginAuditRepository:
    return LoginAuditRepository(memory_store, LoginAuditCodec(cipher))


@pytest.fixture
def make_input() -> Callable[..., ContributionInput]:
    """Factory for valid contribution input, fields overridable."""

    def factory(**overrides) -> ContributionInput:
        values = dict(
            amount=Decimal("20.00"),
            first_name="Anna",
            last_name="Muster",
            email="anna.muster@example.org",
            address="Hauptstrasse 12",
            city="Bern",
            postal_code="3011",
        )
        values.update(overrides)
        return ContributionInput(**values)

    return factory


@pytest.fixture
def make_view() -> Callable[..., ContributionView]:
    """Factory for display-form views without going through a store."""

    def factory(
        amount: str = "20.00",
        paid: bool = False,
        created_at: Optional[datetime] = None,
        contributor_id: Optional[UUID] = None,
        **overrides,
    ) -> ContributionView:
        contributor = contributor_id or uuid4()
        values = dict(
            id=uuid4(),
            contributor_id=contributor,
            agent_id=contributor,
            amount=Decimal(amount),
            first_name="Anna",
            last_name="Muster",
            email="anna.muster@example.org",
            address="Hauptstrasse 12",
            city="Bern",
            postal_code="3011",
            paid=paid,
            created_at=created_at or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )
        values.update(overrides)
        contribution = Contribution(**values)
        entry = DirectoryEntry(id=contributor, display_email="agent@example.org")
        return ContributionView(contribution=contribution, contributor=entry, agent=entry)

    return factory


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    await create_schema(pool)
    await pool.execute("TRUNCATE TABLE contributions, login_logs, user_data")

    yield pool

    await pool.close()


@pytest.fixture
async def postgres_store(pg_pool: asyncpg.Pool) -> PostgresRecordStore:
    """Create a PostgreSQL store instance for testing."""
    return PostgresRecordStore(pg_pool)
