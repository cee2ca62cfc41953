"""Tests for record-level encryption."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from contribution_vault import (
    Contribution,
    ContributionCodec,
    DecryptionError,
    FieldCipher,
    LoginAuditCodec,
    LoginAuditEntry,
    StoredContribution,
)
from contribution_vault.models import CONTRIBUTION_PII_FIELDS


def _contribution() -> Contribution:
    agent = uuid4()
    return Contribution(
        id=uuid4(),
        contributor_id=agent,
        agent_id=agent,
        amount=Decimal("40.00"),
        first_name="Hans",
        last_name="Meier",
        email="hans.meier@example.org",
        address="Marktgasse 5",
        city="Thun",
        postal_code="3600",
        paid=False,
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


def test_storage_form_encrypts_only_pii(codec: ContributionCodec):
    contribution = _contribution()
    stored = codec.to_storage_form(contribution)

    assert isinstance(stored, StoredContribution)
    for name in CONTRIBUTION_PII_FIELDS:
        assert getattr(stored, name) != getattr(contribution, name)
        assert getattr(stored, name).startswith("k1:")
    for name in ("id", "contributor_id", "agent_id", "amount", "first_name", "last_name", "paid", "created_at"):
        assert getattr(stored, name) == getattr(contribution, name)


def test_display_form_restores_plaintext(codec: ContributionCodec):
    contribution = _contribution()
    assert codec.to_display_form(codec.to_storage_form(contribution)) == contribution


def test_each_field_encrypted_independently(codec: ContributionCodec):
    contribution = replace(_contribution(), email="same", address="same", city="same", postal_code="same")
    stored = codec.to_storage_form(contribution)
    tokens = {getattr(stored, name) for name in CONTRIBUTION_PII_FIELDS}
    assert len(tokens) == len(CONTRIBUTION_PII_FIELDS)


def test_failure_names_field_and_record(codec: ContributionCodec):
    stored = codec.to_storage_form(_contribution())
    broken = replace(stored, city="k1:garbage")

    with pytest.raises(DecryptionError) as exc_info:
        codec.to_display_form(broken)

    assert exc_info.value.field == "city"
    assert exc_info.value.record_id == stored.id


def test_token_copied_between_records_is_rejected(codec: ContributionCodec):
    first = codec.to_storage_form(_contribution())
    second = codec.to_storage_form(_contribution())

    with pytest.raises(DecryptionError) as exc_info:
        codec.to_display_form(replace(second, email=first.email))
    assert exc_info.value.field == "email"


def test_token_swapped_between_fields_is_rejected(codec: ContributionCodec):
    stored = codec.to_storage_form(_contribution())
    with pytest.raises(DecryptionError) as exc_info:
        codec.to_display_form(replace(stored, city=stored.address, address=stored.city))
    assert exc_info.value.field == "address"


def test_decode_rows_reports_each_row(codec: ContributionCodec):
    good = codec.to_storage_form(_contribution())
    bad = replace(codec.to_storage_form(_contribution()), postal_code="tampered")

    outcomes = codec.decode_rows([good, bad])

    assert [o.ok for o in outcomes] == [True, False]
    assert outcomes[0].record is not None and outcomes[0].record.id == good.id
    assert outcomes[1].record_id == bad.id
    assert outcomes[1].field == "postal_code"
    assert outcomes[1].reason


def test_login_audit_round_trip(cipher: FieldCipher):
    codec = LoginAuditCodec(cipher)
    entry = LoginAuditEntry(
        id=uuid4(),
        user_id=uuid4(),
        ip_address="203.0.113.7",
        success=True,
        created_at=datetime.now(timezone.utc),
    )
    stored = codec.to_storage_form(entry)

    assert "203.0.113.7" not in stored.ip_address
    assert codec.to_display_form(stored) == entry
