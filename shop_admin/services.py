"""High-level application services orchestrating the shop_admin backend."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from . import aggregations, exports
from .cache import ViewCache
from .config import AppConfig
from .errors import StoreError
from .models import (
    AccountBalances,
    Category,
    ExpenseRecord,
    FinanceRecord,
    LedgerSummary,
    MaterialStock,
    MonthlyOrderBucket,
    Order,
    TrendPoint,
    UserLedger,
)
from .notifications import Notifier
from .repository import StoreRepository
from .search import SearchResult, SearchSession, fan_out_search
from .store import StoreClient

logger = logging.getLogger(__name__)

ORDERS_VIEW = "/admin/orders"
CATEGORIES_VIEW = "/admin/stock/categories"
STATUS_MESSAGE_SUFFIX = " 🚀"
UNKNOWN_USER = "Unknown User"


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Per-request caller information passed explicitly into services."""

    access_token: Optional[str] = None


class DashboardService:
    """Coordinates data access, shaping and side effects for every view."""

    def __init__(
        self,
        config: AppConfig,
        repository: StoreRepository,
        store: StoreClient,
        notifier: Notifier,
        view_cache: ViewCache,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._repository = repository
        self._store = store
        self._notifier = notifier
        self._view_cache = view_cache
        self._tz = ZoneInfo(config.timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def orders(self, period: str = "all", start: Optional[date] = None, end: Optional[date] = None) -> list[Order]:
        """Return the orders listing, served from the view cache when fresh."""

        cache_key = f"{ORDERS_VIEW}?period={period}&start={start}&end={end}"
        cached = self._view_cache.get(cache_key)
        if cached is not None:
            return cached
        lower, upper = aggregations.resolve_period(period, self._now(), start, end)
        orders = self._repository.list_orders_with_products(lower, upper)
        self._view_cache.set(cache_key, orders)
        return orders

    def update_order_status(self, order_id: int, status: str, context: RequestContext) -> Order:
        """Persist a new status, notify the acting user and refresh the listing.

        A failed update raises before anything else happens.  Once the update
        succeeded, a failed identity lookup or notification is only logged; the
        status change stays in place.
        """

        order = self._repository.update_order_status(order_id, status)
        logger.info("Order %s status updated to: %s", order_id, status)

        try:
            try:
                actor_id = self._store.current_user_id(context.access_token)
            except StoreError as exc:
                logger.warning("Could not resolve the acting user: %s", exc)
                actor_id = None
            self._notifier.send(actor_id, status + STATUS_MESSAGE_SUFFIX)
        finally:
            self._view_cache.invalidate(ORDERS_VIEW)
        return order

    def monthly_orders(self) -> list[MonthlyOrderBucket]:
        return aggregations.monthly_order_counts(self._repository.order_timestamps())

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    def cash_flow(self, granularity: str) -> list[TrendPoint]:
        finances = self._repository.list_finance()
        expenses = self._repository.list_expenses()
        return aggregations.cash_flow_trend(finances, expenses, granularity, self._tz)

    def payment_methods(self) -> dict[str, float]:
        return aggregations.payment_method_distribution(self._repository.list_finance())

    def comparison(self) -> list[dict[str, object]]:
        return aggregations.income_vs_expenses(self._repository.list_finance(), self._repository.list_expenses())

    # ------------------------------------------------------------------
    # Ledgers
    # ------------------------------------------------------------------
    def ledger_summary(self) -> LedgerSummary:
        submitter = self._config.ledger_submitter
        finances = self._repository.list_finance(submitter=submitter)
        expenses = self._repository.list_expenses(submitter=submitter)
        latest = self._repository.latest_finance_timestamp()
        return aggregations.ledger_summary(finances, expenses, submitter, latest)

    def account_summary(
        self,
        period: str = "all",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[list[FinanceRecord], AccountBalances]:
        """Deposits within the period and balances per payment mode.

        Balances forward subtract every recorded expense, whatever its date.
        """

        lower, upper = aggregations.resolve_period(period, self._now(), start, end)
        entries = self._repository.list_finance(lower, upper)
        balances = aggregations.account_balances(entries, self._repository.list_expenses())
        return entries, balances

    def payment_details(
        self,
        mode: str,
        period: str = "all",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[list[FinanceRecord], list[ExpenseRecord]]:
        lower, upper = aggregations.resolve_period(period, self._now(), start, end)
        deposits = self._repository.list_finance(lower, upper, mode=mode)
        expenses = self._repository.list_expenses(lower, upper, mode=mode)
        return deposits, expenses

    def record_deposit(
        self,
        amount_paid: float,
        mode_of_payment: str,
        purpose: str,
        submittedby: str,
        mode_of_mobilemoney: Optional[str] = None,
        bank_name: Optional[str] = None,
    ) -> FinanceRecord:
        return self._repository.record_deposit(
            amount_paid, mode_of_payment, purpose, submittedby, mode_of_mobilemoney, bank_name
        )

    def delete_deposit(self, entry_id: int) -> None:
        self._repository.delete_finance(entry_id)

    def user_ledger(self, order_id: int) -> UserLedger:
        """Deposits of the customer behind ``order_id``, summed per payment mode."""

        user_id, order_total = self._repository.order_owner(order_id)
        if user_id is None:
            return UserLedger(order_id, None, UNKNOWN_USER, order_total)
        entries = self._repository.list_finance(user_id=user_id)
        return UserLedger(
            order_id=order_id,
            user_id=user_id,
            user_name=self._repository.user_name(user_id) or UNKNOWN_USER,
            order_total=order_total,
            entries=entries,
            summary=aggregations.account_balances(entries, []),
        )

    def expenses(
        self,
        period: str = "all",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        lower, upper = aggregations.resolve_period(period, self._now(), start, end)
        return self._repository.list_expenses(lower, upper)

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
        return self._repository.save_expense(
            item, amount_spent, department, mode_of_payment, submittedby, account, expense_id
        )

    def delete_expense(self, expense_id: int) -> None:
        self._repository.delete_expense(expense_id)

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------
    def export_expenses(
        self,
        period: str = "all",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[str, str]:
        """Return ``(filename, csv_text)`` for the expenses of the period."""

        rows = self.expenses(period, start, end)
        filename = exports.export_filename("expenses", period, self._now().date())
        return filename, exports.expenses_csv(rows, self._tz)

    def export_ledger(
        self,
        period: str = "all",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[str, str]:
        entries, _ = self.account_summary(period, start, end)
        filename = exports.export_filename("ledger", period, self._now().date())
        return filename, exports.ledger_csv(entries, self._tz)

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    def material_stock(self) -> list[MaterialStock]:
        return aggregations.material_stock_levels(
            self._repository.list_materials(),
            self._repository.list_supply_items(),
            self._repository.list_material_entries(),
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def categories(self) -> list[Category]:
        cached = self._view_cache.get(CATEGORIES_VIEW)
        if cached is not None:
            return cached
        categories = self._repository.list_categories_with_products()
        self._view_cache.set(CATEGORIES_VIEW, categories)
        return categories

    def category_chart(self) -> list[dict[str, object]]:
        return aggregations.category_product_counts(self.categories())

    def create_category(self, name: str) -> Category:
        category = self._repository.create_category(name)
        self._view_cache.invalidate(CATEGORIES_VIEW)
        return category

    def update_category(self, slug: str, name: str) -> Category:
        category = self._repository.update_category(slug, name)
        self._view_cache.invalidate(CATEGORIES_VIEW)
        return category

    def delete_category(self, category_id: int) -> None:
        self._repository.delete_category(category_id)
        self._view_cache.invalidate(CATEGORIES_VIEW)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    def search(self, query: str) -> list[SearchResult]:
        return fan_out_search(self._store, query)

    def search_session(self) -> SearchSession:
        """Return a search-as-you-type session using the configured debounce window."""

        return SearchSession(self._store, wait=self._config.search_debounce_seconds)

    def _now(self) -> datetime:
        return self._clock()
