"""Domain models used by the shop_admin backend.

The classes defined here are lightweight data containers that know nothing
about the data service or HTTP transport.  Rows fetched from the store are
converted into these types by :mod:`shop_admin.rows`; derived types such as
:class:`LedgerSummary` are produced by :mod:`shop_admin.aggregations` and are
recomputed from every fetched snapshot.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class PaymentMode(str, Enum):
    """Payment modes accepted by the finance and expenses tables."""

    CASH = "Cash"
    BANK = "Bank"
    MOBILE_MONEY = "Mobile Money"


@dataclass(slots=True)
class Order:
    """An order created by the storefront.

    ``status`` is free text; this system mutates it but never deletes orders.
    """

    id: int
    status: str
    created_at: Optional[datetime]
    slug: Optional[str] = None
    user: Optional[dict[str, Any]] = None
    items: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class FinanceRecord:
    """Income (deposit) row of the ``finance`` table."""

    id: Optional[int]
    total_amount: float
    amount_paid: float
    amount_available: float
    mode_of_payment: Optional[str]
    submittedby: Optional[str]
    created_at: Optional[datetime]
    mode_of_mobilemoney: Optional[str] = None
    bank_name: Optional[str] = None
    purpose: Optional[str] = None
    user_id: Optional[str] = None
    order_id: Optional[int] = None


@dataclass(slots=True)
class ExpenseRecord:
    """Spending row of the ``expenses`` table."""

    id: Optional[int]
    item: str
    amount_spent: float
    department: Optional[str]
    submittedby: Optional[str]
    date: Optional[datetime]
    mode_of_payment: Optional[str] = None
    account: Optional[str] = None


@dataclass(slots=True)
class Category:
    """Product category with its associated products."""

    id: Optional[int]
    name: str
    slug: str
    created_at: Optional[datetime] = None
    products: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class MaterialStock:
    """Quantity on hand of a raw material: purchases in, usage out."""

    id: Optional[int]
    name: str
    inflow: float = 0.0
    outflow: float = 0.0
    quantity: float = 0.0


@dataclass(slots=True)
class MonthlyOrderBucket:
    """Number of orders created in one calendar month, all years merged."""

    name: str
    orders: int


@dataclass(slots=True)
class TrendPoint:
    """Income and expenses summed for a single chart bucket."""

    date: str
    income: float = 0.0
    expenses: float = 0.0


@dataclass(slots=True)
class LedgerSummary:
    """Totals restricted to a single submitter tag."""

    total_amount_paid: float
    total_amount_available: float
    total_expenses: float
    balance_forward: float
    last_updated: Optional[datetime]


@dataclass(slots=True)
class AccountBalances:
    """Deposits per payment mode and the balance left after expenses."""

    cash: float = 0.0
    bank: float = 0.0
    mobile_money: float = 0.0
    mtn: float = 0.0
    airtel: float = 0.0
    bank_names: dict[str, float] = field(default_factory=dict)
    balance_forward: dict[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class UserLedger:
    """Deposits recorded against the customer who placed an order."""

    order_id: int
    user_id: Optional[str]
    user_name: str
    order_total: float
    entries: list[FinanceRecord] = field(default_factory=list)
    summary: AccountBalances = field(default_factory=AccountBalances)


__all__ = [
    "PaymentMode",
    "Order",
    "FinanceRecord",
    "ExpenseRecord",
    "Category",
    "MaterialStock",
    "MonthlyOrderBucket",
    "TrendPoint",
    "LedgerSummary",
    "AccountBalances",
    "UserLedger",
]
