"""Shared fixtures: an in-memory stand-in for the hosted data service."""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

import pytest

from shop_admin.cache import ViewCache
from shop_admin.config import AppConfig
from shop_admin.errors import StoreError
from shop_admin.repository import StoreRepository
from shop_admin.rows import parse_timestamp
from shop_admin.services import DashboardService

FIXED_NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "store_url": "http://store.test",
        "store_key": "service-key",
        "notify_url": None,
        "timezone": "UTC",
        "ledger_submitter": "Cashier",
        "search_debounce_ms": 300,
        "request_timeout": 5.0,
        "view_cache_ttl": 60.0,
    }
    values.update(overrides)
    return AppConfig(**values)


class FakeStore:
    """Implements the StoreClient surface over dictionaries of rows."""

    def __init__(self, tables: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None, user_id: Optional[str] = "user-1") -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.user_id = user_id
        self.fail_tables: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.identity_calls: list[Optional[str]] = []
        self._next_id = 1000
        self._lock = threading.Lock()

    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq=None,
        ilike=None,
        or_=None,
        gte=None,
        lte=None,
        order=None,
        descending=False,
        limit=None,
    ) -> list[dict[str, Any]]:
        self._record("select", table)
        rows = [dict(row) for row in self.tables.get(table, [])]
        for column, value in (eq or {}).items():
            rows = [row for row in rows if row.get(column) == value]
        for column, value in (ilike or {}).items():
            rows = [row for row in rows if value.lower() in str(row.get(column) or "").lower()]
        if or_:
            clauses = [clause.split(".ilike.", 1) for clause in or_.split(",")]
            rows = [
                row
                for row in rows
                if any(_pattern_matches(row.get(column), pattern) for column, pattern in clauses)
            ]
        for column, value in (gte or {}).items():
            rows = [row for row in rows if _at_least(row.get(column), value)]
        for column, value in (lte or {}).items():
            rows = [row for row in rows if _at_most(row.get(column), value)]
        if order:
            rows.sort(key=lambda row: str(row.get(order) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        self._record("insert", table)
        stored = []
        with self._lock:
            for row in rows:
                self._next_id += 1
                record = {"id": self._next_id, "created_at": FIXED_NOW.isoformat(), **row}
                self.tables.setdefault(table, []).append(record)
                stored.append(dict(record))
        return stored

    def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._record("update", table)
        updated = []
        for row in self.tables.get(table, []):
            if all(row.get(column) == value for column, value in eq.items()):
                row.update(values)
                updated.append(dict(row))
        return updated

    def delete(self, table: str, *, eq: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._record("delete", table)
        rows = self.tables.get(table, [])
        removed = [row for row in rows if all(row.get(column) == value for column, value in eq.items())]
        self.tables[table] = [row for row in rows if row not in removed]
        return removed

    def current_user_id(self, access_token: Optional[str]) -> Optional[str]:
        self.identity_calls.append(access_token)
        return self.user_id if access_token else None

    def close(self) -> None:
        pass

    def _record(self, operation: str, table: str) -> None:
        with self._lock:
            self.calls.append((operation, table))
        if table in self.fail_tables:
            raise StoreError(f'relation "{table}" is unavailable', 503)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[Optional[str], str]] = []

    def send(self, recipient_id: Optional[str], message: str) -> bool:
        self.sent.append((recipient_id, message))
        return True


def _pattern_matches(value: object, pattern: str) -> bool:
    needle = pattern.strip('"').strip("*").lower()
    return value is not None and needle in str(value).lower()


def _at_least(value: object, bound: datetime) -> bool:
    parsed = parse_timestamp(value)
    return parsed is not None and parsed >= bound


def _at_most(value: object, bound: datetime) -> bool:
    parsed = parse_timestamp(value)
    return parsed is not None and parsed <= bound


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(
        {
            "order": [
                {"id": 1, "status": "pending", "slug": "cola-crate-1", "created_at": "2024-03-02T09:00:00+00:00"},
                {"id": 2, "status": "delivered", "slug": "juice-box-2", "created_at": "2024-02-11T12:00:00+00:00"},
            ],
            "finance": [
                {
                    "id": 10,
                    "total_amount": 500,
                    "amount_paid": 300,
                    "amount_available": 300,
                    "mode_of_payment": "Cash",
                    "submittedby": "Cashier",
                    "created_at": "2024-03-05T08:00:00+00:00",
                },
                {
                    "id": 11,
                    "total_amount": 200,
                    "amount_paid": 200,
                    "amount_available": 150,
                    "mode_of_payment": "Mobile Money",
                    "mode_of_mobilemoney": "MTN",
                    "submittedby": "You",
                    "purpose": "Float top-up",
                    "created_at": "2024-03-14T16:00:00+00:00",
                },
            ],
            "expenses": [
                {
                    "id": 20,
                    "item": "Cola syrup",
                    "amount_spent": 120,
                    "department": "Production",
                    "mode_of_payment": "Cash",
                    "submittedby": "Cashier",
                    "date": "2024-03-06T00:00:00+00:00",
                },
            ],
            "category": [
                {"id": 30, "name": "Soft Drinks", "slug": "soft-drinks", "products": [{"id": 1}, {"id": 2}]},
            ],
        }
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(store: FakeStore, notifier: RecordingNotifier) -> DashboardService:
    config = make_config()
    return DashboardService(
        config,
        StoreRepository(store),
        store,
        notifier,
        ViewCache(config.view_cache_ttl),
        clock=lambda: FIXED_NOW,
    )
