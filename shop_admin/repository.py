"""Per-entity data access against the hosted data service.

The repository provides a small, well-typed API that hides table names, column
lists and filter syntax from the rest of the code.  Writes are validated here
so invalid input never reaches the store.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from .errors import InvalidInputError, NotFoundError
from .models import Category, ExpenseRecord, FinanceRecord, Order, PaymentMode
from .rows import (
    category_from_row,
    expense_from_row,
    finance_from_row,
    order_from_row,
    parse_amount,
    parse_timestamp,
    slugify,
    validate_payment_mode,
    validate_status,
)
from .store import StoreClient

ORDER_COLUMNS = "*, order_items:order_item(*, product(*)), user(*)"
CATEGORY_COLUMNS = "*, products:product(*)"


class StoreRepository:
    """Encapsulates all table access for the application."""

    def __init__(self, store: StoreClient) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def list_orders_with_products(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Order]:
        """Return orders with their line items, products and user, newest first."""

        rows = self._store.select(
            "order",
            ORDER_COLUMNS,
            **_range("created_at", start, end),
            order="created_at",
            descending=True,
        )
        return [order_from_row(row) for row in rows]

    def order_timestamps(self) -> list[object]:
        rows = self._store.select("order", "created_at")
        return [row.get("created_at") for row in rows]

    def update_order_status(self, order_id: int, status: str) -> Order:
        """Persist ``status`` verbatim on the order ``order_id``."""

        rows = self._store.update("order", {"status": validate_status(status)}, eq={"id": order_id})
        if not rows:
            raise NotFoundError(f"Order {order_id} does not exist")
        return order_from_row(rows[0])

    def order_owner(self, order_id: int) -> tuple[Optional[str], float]:
        """Return ``(user_id, total_amount)`` of the order ``order_id``."""

        rows = self._store.select("order", "id, user, total_amount", eq={"id": order_id}, limit=1)
        if not rows:
            raise NotFoundError(f"Order {order_id} does not exist")
        user = rows[0].get("user")
        return (str(user) if user is not None else None), parse_amount(rows[0].get("total_amount"))

    def user_name(self, user_id: str) -> Optional[str]:
        rows = self._store.select("users", "name", eq={"id": user_id}, limit=1)
        return rows[0].get("name") if rows else None

    # ------------------------------------------------------------------
    # Finance (income)
    # ------------------------------------------------------------------
    def list_finance(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        submitter: Optional[str] = None,
        mode: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[FinanceRecord]:
        rows = self._store.select(
            "finance",
            eq=_equals(submittedby=submitter, mode_of_payment=mode, user_id=user_id),
            **_range("created_at", start, end),
            order="created_at",
            descending=True,
        )
        return [finance_from_row(row) for row in rows]

    def latest_finance_timestamp(self) -> Optional[datetime]:
        rows = self._store.select("finance", "created_at", order="created_at", descending=True, limit=1)
        if not rows:
            return None
        return parse_timestamp(rows[0].get("created_at"))

    def record_deposit(
        self,
        amount_paid: float,
        mode_of_payment: str,
        purpose: str,
        submittedby: str,
        mode_of_mobilemoney: Optional[str] = None,
        bank_name: Optional[str] = None,
    ) -> FinanceRecord:
        """Insert a deposit whose full amount is available for spending."""

        amount = _positive_amount(amount_paid, "amount_paid")
        mode = validate_payment_mode(mode_of_payment)
        if not purpose or not purpose.strip():
            raise InvalidInputError("A deposit needs a purpose")

        values: dict[str, Any] = {
            "amount_paid": amount,
            "mode_of_payment": mode,
            "amount_available": amount,
            "submittedby": submittedby,
            "purpose": purpose,
        }
        if mode == PaymentMode.MOBILE_MONEY.value:
            values["mode_of_mobilemoney"] = mode_of_mobilemoney
        elif mode == PaymentMode.BANK.value:
            values["bank_name"] = bank_name

        rows = self._store.insert("finance", [values])
        return finance_from_row(rows[0] if rows else values)

    def delete_finance(self, entry_id: int) -> None:
        if not self._store.delete("finance", eq={"id": entry_id}):
            raise NotFoundError(f"Finance entry {entry_id} does not exist")

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------
    def list_expenses(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        submitter: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> list[ExpenseRecord]:
        rows = self._store.select(
            "expenses",
            eq=_equals(submittedby=submitter, mode_of_payment=mode),
            **_range("date", start, end),
            order="date",
            descending=True,
        )
        return [expense_from_row(row) for row in rows]

    def save_expense(
        self,
        item: str,
        amount_spent: float,
        department: str,
        mode_of_payment: str,
        submittedby: str,
        account: Optional[str] = None,
        expense_id: Optional[int] = None,
    ) -> ExpenseRecord:
        """Insert a new expense, or update ``expense_id`` when it is given."""

        if not item or not item.strip():
            raise InvalidInputError("An expense needs an item")
        if not department or not department.strip():
            raise InvalidInputError("An expense needs a department")
        values: dict[str, Any] = {
            "item": item.strip(),
            "amount_spent": _positive_amount(amount_spent, "amount_spent"),
            "department": department,
            "mode_of_payment": validate_payment_mode(mode_of_payment),
            "account": account,
            "submittedby": submittedby,
        }

        if expense_id is None:
            rows = self._store.insert("expenses", [values])
        else:
            rows = self._store.update("expenses", values, eq={"id": expense_id})
            if not rows:
                raise NotFoundError(f"Expense {expense_id} does not exist")
        return expense_from_row(rows[0] if rows else values)

    def delete_expense(self, expense_id: int) -> None:
        if not self._store.delete("expenses", eq={"id": expense_id}):
            raise NotFoundError(f"Expense {expense_id} does not exist")

    # ------------------------------------------------------------------
    # Materials
    # ------------------------------------------------------------------
    def list_materials(self) -> list[dict[str, Any]]:
        return self._store.select("materials", "id, name", order="name")

    def list_supply_items(self) -> list[dict[str, Any]]:
        return self._store.select("supply_items", "id, name, quantity, created_at")

    def list_material_entries(self) -> list[dict[str, Any]]:
        return self._store.select("material_entries", "id, material_id, quantity, action, date, created_at")

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def list_categories_with_products(self) -> list[Category]:
        rows = self._store.select("category", CATEGORY_COLUMNS, order="created_at", descending=True)
        return [category_from_row(row) for row in rows]

    def create_category(self, name: str) -> Category:
        name = _category_name(name)
        values = {"name": name, "slug": slugify(name)}
        rows = self._store.insert("category", [values])
        return category_from_row(rows[0] if rows else values)

    def update_category(self, slug: str, name: str) -> Category:
        name = _category_name(name)
        rows = self._store.update("category", {"name": name, "slug": slugify(name)}, eq={"slug": slug})
        if not rows:
            raise NotFoundError(f"Category {slug!r} does not exist")
        return category_from_row(rows[0])

    def delete_category(self, category_id: int) -> None:
        if not self._store.delete("category", eq={"id": category_id}):
            raise NotFoundError(f"Category {category_id} does not exist")


def _range(column: str, start: Optional[datetime], end: Optional[datetime]) -> dict[str, dict[str, datetime]]:
    bounds: dict[str, dict[str, datetime]] = {}
    if start is not None:
        bounds["gte"] = {column: start}
    if end is not None:
        bounds["lte"] = {column: end}
    return bounds


def _equals(**values: Optional[str]) -> Optional[dict[str, str]]:
    present = {column: value for column, value in values.items() if value is not None}
    return present or None


def _positive_amount(value: object, field_name: str) -> float:
    amount = parse_amount(value)
    if amount <= 0:
        raise InvalidInputError(f"{field_name} must be greater than zero")
    return amount


def _category_name(name: str) -> str:
    if not name or not name.strip():
        raise InvalidInputError("A category needs a name")
    return name.strip()
