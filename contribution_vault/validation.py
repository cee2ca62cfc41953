"""
Validation of contribution form input.

Runs before anything is encrypted or persisted. All problems are collected and
reported together, keyed by field name.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional
from uuid import UUID

from .errors import ValidationError
from .models import ContributionInput, quantize_amount

MAX_TEXT_LENGTH = 1024

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")
POSTAL_CODE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 \-]{2,8}[A-Za-z0-9]$")

REQUIRED_TEXT_FIELDS = {
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "address": "Address is required",
    "city": "City is required",
}


def _parse_amount(value: object) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _parse_uuid(value: object) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


def _clean_text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_contribution(data: ContributionInput) -> ContributionInput:
    """
    Validate and normalize contribution input.

    Text fields are stripped of surrounding whitespace and the amount is
    rounded to two decimal places.

    Args:
        data: Raw form input

    Returns:
        Normalized copy of the input

    Raises:
        ValidationError: With a message per offending field
    """
    errors: Dict[str, str] = {}

    amount = _parse_amount(data.amount)
    if amount is None:
        errors["amount"] = "Amount must be a number"
    elif quantize_amount(amount) <= 0:
        errors["amount"] = "Amount must be greater than 0"

    cleaned: Dict[str, str] = {}
    for name in ("first_name", "last_name", "email", "address", "city", "postal_code"):
        cleaned[name] = _clean_text(getattr(data, name))
        if len(cleaned[name]) > MAX_TEXT_LENGTH:
            errors[name] = f"Must be at most {MAX_TEXT_LENGTH} characters"

    for name, message in REQUIRED_TEXT_FIELDS.items():
        if not cleaned[name]:
            errors[name] = message

    if "email" not in errors and not EMAIL_PATTERN.match(cleaned["email"]):
        errors["email"] = "Invalid email address"

    if "postal_code" not in errors and not POSTAL_CODE_PATTERN.match(cleaned["postal_code"]):
        errors["postal_code"] = "Valid postal code required"

    agent_id: Optional[UUID] = None
    if data.agent_id is not None:
        agent_id = _parse_uuid(data.agent_id)
        if agent_id is None:
            errors["agent_id"] = "Invalid agent selection"

    if errors:
        raise ValidationError(errors)

    return ContributionInput(
        amount=quantize_amount(amount),
        agent_id=agent_id,
        **cleaned,
    )
