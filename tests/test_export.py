"""Tests for the batch/export gateway."""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from structlog.testing import capture_logs

from contribution_vault import (
    ContributionTotals,
    CsvReportRenderer,
    ExportError,
    ExportGateway,
    StoredContribution,
)
from contribution_vault.export import export_filename


@pytest.fixture
def gateway(repository) -> ExportGateway:
    return ExportGateway(repository)


@pytest.mark.parametrize(
    "amounts",
    [
        [],
        ["20.00"],
        ["0.10", "0.20", "0.30"],
        ["19.99", "40.00", "0.01", "1234.56", "7.77"],
    ],
)
def test_totals_are_consistent(gateway, make_view, amounts):
    views = [make_view(amount=a, paid=i % 2 == 0) for i, a in enumerate(amounts)]

    totals = gateway.totals(views)

    assert totals.count == len(amounts)
    assert totals.paid + totals.unpaid == totals.total
    assert totals.total == sum((Decimal(a) for a in amounts), Decimal("0.00"))
    assert totals.paid_count + totals.unpaid_count == totals.count


def test_totals_split_by_status(gateway, make_view):
    views = [make_view(amount="20.00", paid=True), make_view(amount="40.00"), make_view(amount="5.50")]

    totals = gateway.totals(views)

    assert totals == ContributionTotals(
        count=3,
        total=Decimal("65.50"),
        paid=Decimal("20.00"),
        unpaid=Decimal("45.50"),
        paid_count=1,
        unpaid_count=2,
    )


def test_refuses_storage_form_records(gateway):
    stored = StoredContribution(
        id=uuid4(),
        contributor_id=uuid4(),
        agent_id=None,
        amount=Decimal("20.00"),
        first_name="Anna",
        last_name="Muster",
        email="k1:ciphertext",
        address="k1:ciphertext",
        city="k1:ciphertext",
        postal_code="k1:ciphertext",
        paid=False,
        created_at=datetime.now(timezone.utc),
    )
    with pytest.raises(ExportError):
        gateway.export([stored], CsvReportRenderer())
    with pytest.raises(ExportError):
        gateway.totals([stored])


def test_select_keeps_order(gateway, make_view):
    views = [make_view() for _ in range(4)]
    picked = gateway.select(views, {views[3].id, views[1].id})
    assert picked == [views[1], views[3]]


def test_rows(gateway, make_view):
    view = make_view(amount="40.00", paid=True)
    (row,) = gateway.rows([view])

    assert row.email == "anna.muster@example.org"
    assert row.status == "Paid"
    assert row.collected_by == "agent@example.org"
    assert row.date.isoformat() == "2024-05-01"


def test_csv_export(gateway, make_view):
    views = [make_view(amount="20.00", paid=True), make_view(amount="40.00", city="Zürich")]

    content = gateway.export(views, CsvReportRenderer()).decode("utf-8")
    lines = list(csv.reader(io.StringIO(content)))

    assert lines[0] == list(CsvReportRenderer.HEADER)
    assert lines[1][6:8] == ["20.00", "Paid"]
    assert lines[2][4] == "Zürich"
    assert lines[2][7] == "Pending"
    assert ["Total Amount", "60.00"] in lines
    assert ["Paid Amount", "20.00"] in lines
    assert ["Unpaid Amount", "40.00"] in lines


def test_export_filename():
    assert (
        export_filename(CsvReportRenderer(), datetime(2024, 5, 1).date())
        == "contributions-2024-05-01.csv"
    )


async def test_mark_paid_updates_repository(gateway, repository, admin, make_input):
    a = await repository.create(make_input(), admin)
    b = await repository.create(make_input(), admin)
    views = await repository.list(admin)

    updated = await gateway.mark_paid(gateway.select(views, {a.id}), True)

    assert [v.id for v in updated] == [a.id]
    assert updated[0].paid is True
    status = {v.id: v.paid for v in await repository.list(admin)}
    assert status == {a.id: True, b.id: False}


@pytest.mark.parametrize("value", ['=HYPERLINK("http://evil","x")', "+41 79", "-2+3", "@SUM(A1)"])
def test_csv_neutralizes_formula_cells(gateway, make_view, value):
    view = make_view(first_name=value, address=value)

    content = gateway.export([view], CsvReportRenderer()).decode("utf-8")
    row = list(csv.reader(io.StringIO(content)))[1]

    assert row[0] == "'" + value
    assert row[3] == "'" + value
    assert row[6] == "20.00"


def test_csv_leaves_plain_text_alone(gateway, make_view):
    view = make_view(first_name="Anna-Lena", city="Genève")

    content = gateway.export([view], CsvReportRenderer()).decode("utf-8")
    row = list(csv.reader(io.StringIO(content)))[1]

    assert row[0] == "Anna-Lena"
    assert row[4] == "Genève"


async def test_mark_paid_logs_missing_rows(gateway, repository, admin, make_input):
    a = await repository.create(make_input(), admin)
    b = await repository.create(make_input(), admin)
    views = await repository.list(admin)
    await repository.delete({b.id})

    with capture_logs() as logs:
        await gateway.mark_paid(views, True)

    mismatch = [e for e in logs if e["event"] == "paid_status_mismatch"]
    assert mismatch == [
        {"event": "paid_status_mismatch", "requested": 2, "updated": 1, "log_level": "warning"}
    ]
    assert {v.id: v.paid for v in await repository.list(admin)} == {a.id: True}
