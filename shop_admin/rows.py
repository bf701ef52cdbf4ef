"""Conversion of raw store rows into domain models.

Rows arrive as JSON dictionaries whose field names are owned by the data
service.  The helpers below tolerate missing or blank values the same way the
dashboard always has (amounts default to zero, unparsable dates to ``None``)
and enforce the few rules checked before anything is written back.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from dateutil import parser as date_parser

from .errors import InvalidInputError
from .models import Category, ExpenseRecord, FinanceRecord, Order, PaymentMode

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------

def validate_payment_mode(value: object) -> str:
    """Return ``value`` if it names a :class:`PaymentMode`.

    Raises:
        InvalidInputError: for any other value, so unknown modes never reach
            the finance or expenses tables.
    """

    mode = _clean_string(value)
    try:
        return PaymentMode(mode).value
    except ValueError:
        allowed = ", ".join(member.value for member in PaymentMode)
        raise InvalidInputError(f"Unknown payment mode {mode!r}; expected one of: {allowed}") from None


def validate_status(value: object) -> str:
    """Return the order status unchanged unless it is blank."""

    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError("Order status must be a non-empty string")
    return value


def slugify(name: str) -> str:
    """Derive a category slug from its display name."""

    slug = _SLUG_SEPARATORS.sub("-", name.strip().lower()).strip("-")
    if not slug:
        raise InvalidInputError(f"Cannot derive a slug from {name!r}")
    return slug


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------

def order_from_row(row: Mapping[str, Any]) -> Order:
    return Order(
        id=row["id"],
        status=_clean_string(row.get("status")),
        created_at=parse_timestamp(row.get("created_at")),
        slug=row.get("slug"),
        user=row.get("user"),
        items=list(row.get("order_items") or []),
    )


def finance_from_row(row: Mapping[str, Any]) -> FinanceRecord:
    return FinanceRecord(
        id=row.get("id"),
        total_amount=parse_amount(row.get("total_amount")),
        amount_paid=parse_amount(row.get("amount_paid")),
        amount_available=parse_amount(row.get("amount_available")),
        mode_of_payment=row.get("mode_of_payment"),
        submittedby=row.get("submittedby"),
        created_at=parse_timestamp(row.get("created_at")),
        mode_of_mobilemoney=row.get("mode_of_mobilemoney"),
        bank_name=row.get("bank_name"),
        purpose=row.get("purpose"),
        user_id=_optional_str(row.get("user_id")),
        order_id=row.get("order_id"),
    )


def expense_from_row(row: Mapping[str, Any]) -> ExpenseRecord:
    return ExpenseRecord(
        id=row.get("id"),
        item=_clean_string(row.get("item")),
        amount_spent=parse_amount(row.get("amount_spent")),
        department=row.get("department"),
        submittedby=row.get("submittedby"),
        date=parse_timestamp(row.get("date")),
        mode_of_payment=row.get("mode_of_payment"),
        account=row.get("account"),
    )


def category_from_row(row: Mapping[str, Any]) -> Category:
    name = _clean_string(row.get("name"))
    return Category(
        id=row.get("id"),
        name=name,
        slug=row.get("slug") or slugify(name),
        created_at=parse_timestamp(row.get("created_at")),
        products=list(row.get("products") or []),
    )


# ---------------------------------------------------------------------------
# Helper utilities
# ---------------------------------------------------------------------------

def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse a store timestamp into an aware UTC :class:`datetime`.

    Naive values are taken to be UTC, which is how the data service stores
    ``timestamp`` columns without a zone.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        stringified = str(value).strip()
        if not stringified:
            return None
        try:
            parsed = date_parser.parse(stringified)
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_amount(value: object) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    stringified = str(value).strip().replace(",", "")
    if not stringified:
        return 0.0
    try:
        return float(Decimal(stringified))
    except (InvalidOperation, ValueError):
        return 0.0


def _clean_string(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_str(value: object) -> Optional[str]:
    return None if value is None else str(value)
