"""
In-memory filtering of decrypted contributions.

Ciphertext is non-deterministic, so none of these predicates can be pushed
down to the record store; they run over the output of
ContributionRepository.list().
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional
from uuid import UUID

from .models import ContributionView


class PaymentStatus(Enum):
    ALL = "all"
    PAID = "paid"
    UNPAID = "unpaid"


class DateRange(Enum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def _months_back(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def range_start(date_range: DateRange, now: datetime) -> Optional[datetime]:
    """Earliest creation time included by a date range (None for ALL/TODAY)."""
    if date_range is DateRange.WEEK:
        return now - timedelta(days=7)
    if date_range is DateRange.MONTH:
        return _months_back(now, 1)
    if date_range is DateRange.YEAR:
        return _months_back(now, 12)
    return None


@dataclass
class ContributionFilter:
    """Search and filter criteria from the admin dashboard."""

    search: str = ""
    contributor_id: Optional[UUID] = None
    status: PaymentStatus = PaymentStatus.ALL
    date_range: DateRange = DateRange.ALL
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None

    def matches(self, view: ContributionView, now: datetime) -> bool:
        """A naive ``now`` is taken as local time."""
        if now.tzinfo is None:
            now = now.astimezone()
        c = view.contribution

        term = self.search.strip().lower()
        if term:
            haystack = (
                c.first_name,
                c.last_name,
                c.email,
                c.address,
                c.city,
                c.postal_code,
            )
            if not any(term in value.lower() for value in haystack):
                return False

        if self.contributor_id is not None and c.contributor_id != self.contributor_id:
            return False

        if self.status is PaymentStatus.PAID and not c.paid:
            return False
        if self.status is PaymentStatus.UNPAID and c.paid:
            return False

        if self.date_range is DateRange.TODAY:
            if c.created_at.astimezone(now.tzinfo).date() != now.date():
                return False
        else:
            start = range_start(self.date_range, now)
            if start is not None and c.created_at < start:
                return False

        if self.min_amount is not None and c.amount < self.min_amount:
            return False
        if self.max_amount is not None and c.amount > self.max_amount:
            return False

        return True

    def apply(
        self, views: Iterable[ContributionView], now: Optional[datetime] = None
    ) -> List[ContributionView]:
        """Return the matching views, preserving order."""
        moment = now if now is not None else datetime.now(timezone.utc)
        return [v for v in views if self.matches(v, moment)]
