"""
Data model for contributions, login audit entries and directory identities.

Display-form and storage-form records are separate types: a
StoredContribution carries ciphertext in its PII fields and can never be
handed to the export gateway by mistake.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple
from uuid import UUID

CONTRIBUTION_PII_FIELDS: Tuple[str, ...] = ("email", "address", "city", "postal_code")
LOGIN_PII_FIELDS: Tuple[str, ...] = ("ip_address",)

UNKNOWN_IDENTITY = "Unknown"

CENTS = Decimal("0.01")


def quantize_amount(value: Decimal) -> Decimal:
    """Round an amount to two decimal places."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Caller:
    """Identity of the user performing an operation (from the auth provider)."""

    user_id: UUID
    is_admin: bool = False


@dataclass
class ContributionInput:
    """Contribution form data, PII in plaintext."""

    amount: Decimal
    first_name: str
    last_name: str
    email: str
    address: str
    city: str
    postal_code: str
    agent_id: Optional[UUID] = None

    @classmethod
    def from_contribution(cls, contribution: Contribution) -> ContributionInput:
        """Carry every editable field of an existing record forward for an edit."""
        return cls(
            amount=contribution.amount,
            first_name=contribution.first_name,
            last_name=contribution.last_name,
            email=contribution.email,
            address=contribution.address,
            city=contribution.city,
            postal_code=contribution.postal_code,
            agent_id=contribution.agent_id,
        )


@dataclass
class Contribution:
    """Contribution in display form (PII decrypted)."""

    id: UUID
    contributor_id: UUID
    agent_id: Optional[UUID]
    amount: Decimal
    first_name: str
    last_name: str
    email: str
    address: str
    city: str
    postal_code: str
    paid: bool
    created_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class StoredContribution:
    """Contribution in storage form (PII fields hold ciphertext tokens)."""

    id: UUID
    contributor_id: UUID
    agent_id: Optional[UUID]
    amount: Decimal
    first_name: str
    last_name: str
    email: str
    address: str
    city: str
    postal_code: str
    paid: bool
    created_at: datetime


@dataclass
class LoginAuditEntry:
    """Login attempt in display form."""

    id: UUID
    user_id: UUID
    ip_address: str
    success: bool
    created_at: datetime


@dataclass
class StoredLoginAuditEntry:
    """Login attempt in storage form (ip_address is ciphertext)."""

    id: UUID
    user_id: UUID
    ip_address: str
    success: bool
    created_at: datetime


@dataclass(frozen=True)
class DirectoryEntry:
    """Display identity of a user. Read-only."""

    id: UUID
    display_email: str

    @classmethod
    def unknown(cls, user_id: UUID) -> DirectoryEntry:
        """Sentinel for ids missing from the directory."""
        return cls(id=user_id, display_email=UNKNOWN_IDENTITY)

    @property
    def is_unknown(self) -> bool:
        return self.display_email == UNKNOWN_IDENTITY


@dataclass
class ContributionView:
    """Display-form contribution enriched with directory identities."""

    contribution: Contribution
    contributor: DirectoryEntry
    agent: Optional[DirectoryEntry] = None

    @property
    def id(self) -> UUID:
        return self.contribution.id

    @property
    def amount(self) -> Decimal:
        return self.contribution.amount

    @property
    def paid(self) -> bool:
        return self.contribution.paid

    @property
    def collected_by(self) -> str:
        """Display email of the crediting agent, falling back to the submitter."""
        if self.agent is not None:
            return self.agent.display_email
        return self.contributor.display_email
