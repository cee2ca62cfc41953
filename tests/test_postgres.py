"""
PostgreSQL record store tests.

Skipped unless DATABASE_URL points at a disposable database.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from contribution_vault import (
    Caller,
    ContributionCodec,
    ContributionRepository,
    DirectoryResolver,
    FieldCipher,
    LoginAuditCodec,
    LoginAuditRepository,
    PostgresRecordStore,
    RecordNotFoundError,
)
from contribution_vault.models import CONTRIBUTION_PII_FIELDS


@pytest.mark.parametrize(
    "status, expected",
    [("UPDATE 3", 3), ("DELETE 0", 0), ("INSERT 0 1", 1), ("", 0), (None, 0)],
)
def test_affected_rows_parsing(status, expected):
    assert PostgresRecordStore._affected(status) == expected


@pytest.fixture
async def pg_repository(postgres_store: PostgresRecordStore, cipher: FieldCipher):
    return ContributionRepository(
        postgres_store, ContributionCodec(cipher), DirectoryResolver(postgres_store)
    )


async def test_round_trip_through_postgres(pg_repository, postgres_store, pg_pool, make_input):
    agent = Caller(user_id=uuid4())
    await pg_pool.execute(
        "INSERT INTO user_data (id, email) VALUES ($1, $2)", agent.user_id, "agent@example.org"
    )

    data = make_input()
    view = await pg_repository.create(data, agent)

    assert view.contribution.email == data.email
    assert view.contributor.display_email == "agent@example.org"

    raw = await pg_pool.fetchrow("SELECT * FROM contributions WHERE id = $1", view.id)
    for name in CONTRIBUTION_PII_FIELDS:
        assert raw[name] != getattr(data, name)

    listed = await pg_repository.list(agent)
    assert [v.id for v in listed] == [view.id]
    assert await pg_repository.list(Caller(user_id=uuid4())) == []


async def test_paid_status_and_delete(pg_repository, make_input):
    admin = Caller(user_id=uuid4(), is_admin=True)
    a = await pg_repository.create(make_input(), admin)
    b = await pg_repository.create(make_input(), admin)

    assert await pg_repository.set_paid_status({a.id}, True) == 1
    status = {v.id: v.paid for v in await pg_repository.list(admin)}
    assert status == {a.id: True, b.id: False}

    assert await pg_repository.delete({b.id}) == 1
    assert [v.id for v in await pg_repository.list(admin)] == [a.id]


async def test_update_missing_row(pg_repository, make_input):
    with pytest.raises(RecordNotFoundError):
        await pg_repository.update(uuid4(), make_input(), Caller(user_id=uuid4(), is_admin=True))


async def test_login_entries(postgres_store, cipher):
    repository = LoginAuditRepository(postgres_store, LoginAuditCodec(cipher))
    user_id = uuid4()
    await repository.record(user_id, "192.0.2.10", True)
    await repository.record(user_id, "192.0.2.11", False)

    entries = await repository.recent(user_id, limit=1)
    assert [e.ip_address for e in entries] == ["192.0.2.11"]
