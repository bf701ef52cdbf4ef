"""Pure functions shaping fetched rows into chart-ready series.

Every function here is a reduction over the snapshot it receives.  Nothing is
cached, so callers recompute whenever the underlying rows change.
"""
from __future__ import annotations

import logging
import math
from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Iterable, Mapping, Optional

from dateutil import parser as date_parser

from .errors import InvalidInputError
from .models import (
    AccountBalances,
    Category,
    ExpenseRecord,
    FinanceRecord,
    LedgerSummary,
    MaterialStock,
    MonthlyOrderBucket,
    PaymentMode,
    TrendPoint,
)
from .rows import parse_amount, parse_timestamp

logger = logging.getLogger(__name__)

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
GRANULARITIES = ("day", "week", "month")
PERIODS = ("all", "daily", "weekly", "monthly", "yearly", "custom")
UNKNOWN_PAYMENT_MODE = "Unknown"
DEFAULT_SUBMITTER = "Cashier"
_KNOWN_PAYMENT_MODES = frozenset(mode.value for mode in PaymentMode)

# Year assumed when a bucket key such as "Mar" carries no year of its own.
_KEY_REFERENCE_DATE = datetime(2001, 1, 1)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def monthly_order_counts(timestamps: Iterable[object]) -> list[MonthlyOrderBucket]:
    """Count orders per UTC calendar month.

    Buckets are keyed by month name only, so orders from different years share
    a bucket.  The result lists months in the order they were first seen, and
    an empty input produces an empty list rather than twelve zero buckets.
    """

    counts: dict[str, int] = {}
    for value in timestamps:
        created_at = parse_timestamp(value)
        if created_at is None:
            logger.warning("Skipping order with unparsable created_at %r", value)
            continue
        month = MONTH_NAMES[created_at.astimezone(timezone.utc).month - 1]
        counts[month] = counts.get(month, 0) + 1
    return [MonthlyOrderBucket(name=month, orders=count) for month, count in counts.items()]


def category_product_counts(categories: Iterable[Category]) -> list[dict[str, object]]:
    return [{"name": category.name, "products": len(category.products)} for category in categories]


# ---------------------------------------------------------------------------
# Cash flow
# ---------------------------------------------------------------------------

def bucket_key(moment: datetime, granularity: str, tz: tzinfo = timezone.utc) -> str:
    """Return the chart bucket label of ``moment``.

    ``day`` uses the ``M/D/YYYY`` calendar date, ``week`` the week of the month
    (``ceil(day / 7)``, restarting every month) and ``month`` the three letter
    month name.
    """

    local = moment.astimezone(tz)
    if granularity == "day":
        return f"{local.month}/{local.day}/{local.year}"
    if granularity == "week":
        return f"Week {math.ceil(local.day / 7)}"
    if granularity == "month":
        return MONTH_NAMES[local.month - 1]
    raise InvalidInputError(f"Unknown granularity {granularity!r}; expected one of: {', '.join(GRANULARITIES)}")


def cash_flow_trend(
    finances: Iterable[FinanceRecord],
    expenses: Iterable[ExpenseRecord],
    granularity: str,
    tz: tzinfo = timezone.utc,
) -> list[TrendPoint]:
    """Merge income and expenses into one point per bucket.

    Income is the ``amount_paid`` of finance rows (dated by ``created_at``),
    expenses the ``amount_spent`` of expense rows (dated by ``date``).  A bucket
    present on one side only still yields a point, with the other side at zero.

    Points are ordered by reading their label back as a date.  That is lossy:
    month labels land in a fixed reference year and ``Week n`` labels cannot be
    read at all, so those keep their first-seen order after the dated ones.
    """

    if granularity not in GRANULARITIES:
        raise InvalidInputError(f"Unknown granularity {granularity!r}; expected one of: {', '.join(GRANULARITIES)}")

    points: dict[str, TrendPoint] = {}
    for finance in finances:
        if finance.created_at is None:
            continue
        key = bucket_key(finance.created_at, granularity, tz)
        points.setdefault(key, TrendPoint(date=key)).income += finance.amount_paid
    for expense in expenses:
        if expense.date is None:
            continue
        key = bucket_key(expense.date, granularity, tz)
        points.setdefault(key, TrendPoint(date=key)).expenses += expense.amount_spent

    indexed = sorted(enumerate(points.values()), key=lambda item: _label_sort_key(item[1].date, item[0]))
    return [point for _, point in indexed]


def _label_sort_key(label: str, position: int) -> tuple[bool, datetime, int]:
    try:
        parsed = date_parser.parse(label, default=_KEY_REFERENCE_DATE)
    except (ValueError, OverflowError):
        return True, datetime.min, position
    return False, parsed.replace(tzinfo=None), position


def income_vs_expenses(
    finances: Iterable[FinanceRecord],
    expenses: Iterable[ExpenseRecord],
) -> list[dict[str, object]]:
    total_income = sum(finance.amount_paid for finance in finances)
    total_expenses = sum(expense.amount_spent for expense in expenses)
    return [
        {"name": "Income", "value": total_income},
        {"name": "Expenses", "value": total_expenses},
        {"name": "Net", "value": total_income - total_expenses},
    ]


# ---------------------------------------------------------------------------
# Payment modes and ledgers
# ---------------------------------------------------------------------------

def payment_method_distribution(finances: Iterable[FinanceRecord]) -> dict[str, float]:
    """Sum ``amount_paid`` per payment mode.

    The three known modes are always present.  Rows carrying any other mode are
    summed under ``"Unknown"``, which only appears when such rows exist.
    """

    distribution: dict[str, float] = {mode.value: 0.0 for mode in PaymentMode}
    for finance in finances:
        mode = finance.mode_of_payment
        if mode not in _KNOWN_PAYMENT_MODES:
            logger.warning("Finance row %s has unknown payment mode %r", finance.id, mode)
            mode = UNKNOWN_PAYMENT_MODE
            distribution.setdefault(mode, 0.0)
        distribution[mode] += finance.amount_paid
    return distribution


def ledger_summary(
    finances: Iterable[FinanceRecord],
    expenses: Iterable[ExpenseRecord],
    submitter: str = DEFAULT_SUBMITTER,
    last_updated: Optional[datetime] = None,
) -> LedgerSummary:
    """Summarise the ledger of a single submitter.

    Args:
        finances: Finance rows; only those submitted by ``submitter`` count.
        expenses: Expense rows; only those submitted by ``submitter`` count.
        submitter: Submitter tag defining the ledger.
        last_updated: Latest finance timestamp when the caller fetched it on
            its own.  Otherwise it is the newest ``created_at`` among
            ``finances``.
    """

    finances = list(finances)
    scoped_finances = [finance for finance in finances if finance.submittedby == submitter]
    scoped_expenses = [expense for expense in expenses if expense.submittedby == submitter]

    total_paid = sum(finance.amount_paid for finance in scoped_finances)
    total_available = sum(finance.amount_available for finance in scoped_finances)
    total_expenses = sum(expense.amount_spent for expense in scoped_expenses)

    if last_updated is None:
        dated = sorted(
            (finance.created_at for finance in finances if finance.created_at is not None),
            reverse=True,
        )
        last_updated = dated[0] if dated else None

    return LedgerSummary(
        total_amount_paid=total_paid,
        total_amount_available=total_available,
        total_expenses=total_expenses,
        balance_forward=total_available - total_expenses,
        last_updated=last_updated,
    )


def account_balances(
    finances: Iterable[FinanceRecord],
    expenses: Iterable[ExpenseRecord],
) -> AccountBalances:
    """Deposits per payment mode and what is left of each after expenses."""

    balances = AccountBalances()
    for finance in finances:
        if finance.mode_of_payment == PaymentMode.CASH.value:
            balances.cash += finance.amount_paid
        elif finance.mode_of_payment == PaymentMode.BANK.value:
            balances.bank += finance.amount_paid
            if finance.bank_name:
                balances.bank_names[finance.bank_name] = (
                    balances.bank_names.get(finance.bank_name, 0.0) + finance.amount_paid
                )
        elif finance.mode_of_payment == PaymentMode.MOBILE_MONEY.value:
            balances.mobile_money += finance.amount_paid
            if finance.mode_of_mobilemoney == "MTN":
                balances.mtn += finance.amount_paid
            elif finance.mode_of_mobilemoney == "Airtel":
                balances.airtel += finance.amount_paid

    spent = {mode.value: 0.0 for mode in PaymentMode}
    for expense in expenses:
        if expense.mode_of_payment in spent:
            spent[expense.mode_of_payment] += expense.amount_spent

    balances.balance_forward = {
        "cash": balances.cash - spent[PaymentMode.CASH.value],
        "bank": balances.bank - spent[PaymentMode.BANK.value],
        "mobile_money": balances.mobile_money - spent[PaymentMode.MOBILE_MONEY.value],
    }
    return balances


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------

def material_stock_levels(
    materials: Iterable[Mapping[str, Any]],
    supplies: Iterable[Mapping[str, Any]],
    usages: Iterable[Mapping[str, Any]],
) -> list[MaterialStock]:
    """Quantity on hand per material, in the order ``materials`` are given.

    Purchases (``supply_items``) carry the material by name, usages
    (``material_entries``) by ``material_id``.  Either side that matches no
    material is ignored.
    """

    stock = [
        MaterialStock(id=row.get("id"), name=str(row.get("name") or "").strip())
        for row in materials
    ]
    by_name = {item.name: item for item in stock}
    by_id = {item.id: item for item in stock}

    for supply in supplies:
        item = by_name.get(str(supply.get("name") or "").strip())
        if item is not None:
            item.inflow += parse_amount(supply.get("quantity"))
    for usage in usages:
        item = by_id.get(usage.get("material_id"))
        if item is not None:
            item.outflow += parse_amount(usage.get("quantity"))

    for item in stock:
        item.quantity = item.inflow - item.outflow
    return stock


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------

def resolve_period(
    period: str,
    now: datetime,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Translate a named period into inclusive ``(start, end)`` bounds.

    ``now`` decides the timezone of the bounds.  ``all`` and an incomplete
    ``custom`` range impose no bounds and return ``(None, None)``.  Weeks run
    from Sunday to Saturday.
    """

    tz = now.tzinfo
    today = now.date()
    if period == "all":
        return None, None
    if period == "daily":
        return _day_bounds(today, today, tz)
    if period == "weekly":
        sunday = today - timedelta(days=(today.weekday() + 1) % 7)
        return _day_bounds(sunday, sunday + timedelta(days=6), tz)
    if period == "monthly":
        last_day = monthrange(today.year, today.month)[1]
        return _day_bounds(today.replace(day=1), today.replace(day=last_day), tz)
    if period == "yearly":
        return _day_bounds(date(today.year, 1, 1), date(today.year, 12, 31), tz)
    if period == "custom":
        if start is None or end is None:
            return None, None
        if start > end:
            raise InvalidInputError("Custom period start must not be after its end")
        return _day_bounds(start, end, tz)
    raise InvalidInputError(f"Unknown period {period!r}; expected one of: {', '.join(PERIODS)}")


def _day_bounds(first: date, last: date, tz: Optional[tzinfo]) -> tuple[datetime, datetime]:
    return datetime.combine(first, time.min, tzinfo=tz), datetime.combine(last, time.max, tzinfo=tz)
