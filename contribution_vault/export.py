"""
Batch actions and report export over decrypted contributions.

The gateway only accepts display-form records and never touches the codec. A
storage-form record reaching it means an upstream decryption step was
skipped, so it refuses to continue rather than export ciphertext.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Collection, Iterable, List, Protocol, Sequence
from uuid import UUID

import structlog

from .errors import ExportError
from .models import ContributionView, quantize_amount
from .repository import ContributionRepository

log = structlog.get_logger(__name__)

STATUS_PAID = "Paid"
STATUS_PENDING = "Pending"

# Leading characters spreadsheet applications treat as the start of a formula
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _cell(value: str) -> str:
    if value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value


@dataclass(frozen=True)
class ContributionTotals:
    """Aggregate amounts of a set of contributions."""

    count: int
    total: Decimal
    paid: Decimal
    unpaid: Decimal
    paid_count: int
    unpaid_count: int


@dataclass(frozen=True)
class ExportRow:
    """One flattened contribution as handed to a report renderer."""

    first_name: str
    last_name: str
    email: str
    address: str
    city: str
    postal_code: str
    amount: Decimal
    status: str
    collected_by: str
    date: date


class ReportRenderer(Protocol):
    """Turns export rows into a downloadable artifact."""

    file_extension: str
    content_type: str

    def render(self, rows: Sequence[ExportRow], totals: ContributionTotals) -> bytes:
        ...


class CsvReportRenderer:
    """CSV report: one line per contribution followed by a summary block."""

    file_extension = "csv"
    content_type = "text/csv"

    HEADER = (
        "First Name",
        "Last Name",
        "Email",
        "Address",
        "City",
        "Postal Code",
        "Amount",
        "Status",
        "Collected By",
        "Date",
    )

    def render(self, rows: Sequence[ExportRow], totals: ContributionTotals) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(self.HEADER)
        for row in rows:
            writer.writerow(
                (
                    _cell(row.first_name),
                    _cell(row.last_name),
                    _cell(row.email),
                    _cell(row.address),
                    _cell(row.city),
                    _cell(row.postal_code),
                    f"{row.amount:.2f}",
                    row.status,
                    _cell(row.collected_by),
                    row.date.isoformat(),
                )
            )
        writer.writerow(())
        writer.writerow(("Total Contributions", totals.count))
        writer.writerow(("Total Amount", f"{totals.total:.2f}"))
        writer.writerow(("Paid Amount", f"{totals.paid:.2f}"))
        writer.writerow(("Unpaid Amount", f"{totals.unpaid:.2f}"))
        return buffer.getvalue().encode("utf-8")


def export_filename(renderer: ReportRenderer, on: date) -> str:
    """Default download name, e.g. ``contributions-2024-05-01.csv``."""
    return f"contributions-{on.isoformat()}.{renderer.file_extension}"


def _ensure_display(views: Iterable[object]) -> List[ContributionView]:
    checked: List[ContributionView] = []
    for view in views:
        if not isinstance(view, ContributionView):
            raise ExportError(
                f"Export requires decrypted ContributionView records, got {type(view).__name__}"
            )
        checked.append(view)
    return checked


class ExportGateway:
    """Selection, totals, batch status changes and report hand-off."""

    def __init__(self, repository: ContributionRepository) -> None:
        self._repository = repository

    def select(
        self, views: Iterable[ContributionView], contribution_ids: Collection[UUID]
    ) -> List[ContributionView]:
        """Views whose id is in ``contribution_ids``, in their original order."""
        wanted = set(contribution_ids)
        return [v for v in _ensure_display(views) if v.id in wanted]

    def totals(self, views: Iterable[ContributionView]) -> ContributionTotals:
        """
        Sum amounts, split by payment status.

        ``paid + unpaid == total`` always holds since every amount is already
        quantized to cents.
        """
        checked = _ensure_display(views)
        paid = [v.amount for v in checked if v.paid]
        unpaid = [v.amount for v in checked if not v.paid]
        paid_sum = quantize_amount(sum(paid, Decimal("0")))
        unpaid_sum = quantize_amount(sum(unpaid, Decimal("0")))
        return ContributionTotals(
            count=len(checked),
            total=paid_sum + unpaid_sum,
            paid=paid_sum,
            unpaid=unpaid_sum,
            paid_count=len(paid),
            unpaid_count=len(unpaid),
        )

    async def mark_paid(
        self, views: Iterable[ContributionView], paid: bool
    ) -> List[ContributionView]:
        """
        Set the payment status of the given views in storage.

        Rows that vanished from storage in the meantime are not updated; the
        shortfall is logged.

        Returns:
            The same views with ``paid`` updated
        """
        checked = _ensure_display(views)
        requested = {v.id for v in checked}
        updated = await self._repository.set_paid_status(requested, paid)
        if updated != len(requested):
            log.warning("paid_status_mismatch", requested=len(requested), updated=updated)
        return [
            replace(v, contribution=replace(v.contribution, paid=paid)) for v in checked
        ]

    def rows(self, views: Iterable[ContributionView]) -> List[ExportRow]:
        """Flatten views into renderer rows."""
        return [
            ExportRow(
                first_name=v.contribution.first_name,
                last_name=v.contribution.last_name,
                email=v.contribution.email,
                address=v.contribution.address,
                city=v.contribution.city,
                postal_code=v.contribution.postal_code,
                amount=v.amount,
                status=STATUS_PAID if v.paid else STATUS_PENDING,
                collected_by=v.collected_by,
                date=v.contribution.created_at.date(),
            )
            for v in _ensure_display(views)
        ]

    def export(self, views: Iterable[ContributionView], renderer: ReportRenderer) -> bytes:
        """Render a report of the given views."""
        checked = _ensure_display(views)
        rows = self.rows(checked)
        totals = self.totals(checked)
        log.info("report_exported", rows=len(rows), format=renderer.file_extension)
        return renderer.render(rows, totals)
