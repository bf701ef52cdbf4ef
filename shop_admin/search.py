"""Cross-entity search across the dashboard tables.

A query is matched case-insensitively against one designated text column per
table (three columns for ``finance``).  The per-table queries run concurrently
and the combined result is only returned once all of them have settled; a
table whose query fails simply contributes no rows.

:class:`SearchSession` adds search-as-you-type behaviour on top: keystrokes
are debounced and responses belonging to superseded input are discarded.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from .store import StoreClient

logger = logging.getLogger(__name__)

SearchResult = dict[str, Any]


@dataclass(frozen=True, slots=True)
class SearchSource:
    """A table searched by the header box and the columns matched in it."""

    table: str
    columns: tuple[str, ...]


SEARCH_SOURCES: tuple[SearchSource, ...] = (
    SearchSource("product", ("title",)),
    SearchSource("products_materials", ("product_id",)),
    SearchSource("order", ("slug",)),
    SearchSource("materials", ("name",)),
    SearchSource("expenses", ("item",)),
    SearchSource("users", ("name",)),
    SearchSource("finance", ("mode_of_payment", "mode_of_mobilemoney", "bank_name")),
)

SEARCH_ROUTE_ROOT = "/admin/search"

# Detail view prefix per table; tables missing here use SEARCH_ROUTE_ROOT/<table>.
ROUTE_PREFIXES: dict[str, str] = {
    **{source.table: f"{SEARCH_ROUTE_ROOT}/{source.table}" for source in SEARCH_SOURCES},
    "user_ledger": f"{SEARCH_ROUTE_ROOT}/user_ledger",
}

# Fields tried in turn when a result needs a human readable label.
LABEL_FIELDS = (
    "title",
    "material_name",
    "slug",
    "name",
    "item",
    "email",
    "mode_of_payment",
    "mode_of_mobilemoney",
    "bank_name",
)

_RESERVED = set(',.:()"\\')


def fan_out_search(
    store: StoreClient,
    query: str,
    sources: Sequence[SearchSource] = SEARCH_SOURCES,
) -> list[SearchResult]:
    """Search every source concurrently and flatten the matches.

    Results are grouped table by table in ``sources`` order and keep the row
    order returned by each table.  Every row gains a ``table`` key naming its
    source.  Nothing is ranked or de-duplicated.  A blank query returns an
    empty list without contacting the store.
    """

    if not query or not query.strip():
        return []

    with ThreadPoolExecutor(max_workers=max(len(sources), 1), thread_name_prefix="search") as pool:
        futures = [pool.submit(_search_source, store, source, query) for source in sources]

    results: list[SearchResult] = []
    for source, future in zip(sources, futures):
        try:
            rows = future.result()
        except Exception:
            logger.warning("Search of table %s failed for %r", source.table, query, exc_info=True)
            continue
        results.extend({**row, "table": source.table} for row in rows)
    return results


def _search_source(store: StoreClient, source: SearchSource, query: str) -> list[dict[str, Any]]:
    if len(source.columns) == 1:
        return store.select(source.table, ilike={source.columns[0]: query})
    pattern = _pattern_value(query)
    return store.select(
        source.table,
        or_=",".join(f"{column}.ilike.{pattern}" for column in source.columns),
    )


def _pattern_value(query: str) -> str:
    pattern = f"*{query}*"
    if _RESERVED.intersection(query):
        escaped = pattern.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return pattern


def route_for(result: SearchResult) -> str:
    """Return the detail view of a search result."""

    table = result["table"]
    prefix = ROUTE_PREFIXES.get(table, f"{SEARCH_ROUTE_ROOT}/{table}")
    return f"{prefix}/{result.get('id')}"


def display_label(result: SearchResult) -> Optional[str]:
    for field_name in LABEL_FIELDS:
        value = result.get(field_name)
        if value:
            return str(value)
    return None


class Debouncer:
    """Trailing debounce: only the last call within ``wait`` seconds runs.

    Every call cancels the pending one and restarts the timer.
    """

    def __init__(self, wait: float, func: Callable[..., Any]) -> None:
        self._wait = wait
        self._func = func
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._wait, self._func, args, kwargs)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class SearchSession:
    """Search-as-you-type state for a single user.

    Each keystroke bumps a generation counter.  Only the input that stays
    unchanged for the debounce window is searched, and a response is applied
    only if no newer keystroke arrived while it was in flight.
    """

    def __init__(
        self,
        store: StoreClient,
        wait: float = 0.3,
        sources: Sequence[SearchSource] = SEARCH_SOURCES,
        search: Callable[[StoreClient, str, Sequence[SearchSource]], list[SearchResult]] = fan_out_search,
    ) -> None:
        self._store = store
        self._sources = sources
        self._search = search
        self._lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._generation = 0
        self._debouncer = Debouncer(wait, self._run)
        self.query = ""
        self.results: list[SearchResult] = []
        self.loading = False

    @property
    def generation(self) -> int:
        return self._generation

    def type(self, text: str) -> None:
        """Record new input and (re)schedule the search for it."""

        with self._lock:
            self._generation += 1
            generation = self._generation
            self.query = text
            self._idle.clear()
        self._debouncer(text, generation)

    def select(self, result: SearchResult) -> str:
        """Clear the search and return the route of the chosen result."""

        route = route_for(result)
        self.clear()
        return route

    def clear(self) -> None:
        self._debouncer.cancel()
        with self._lock:
            self._generation += 1
            self.query = ""
            self.results = []
            self.loading = False
            self._idle.set()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the latest input has been searched (or cleared)."""

        return self._idle.wait(timeout)

    def close(self) -> None:
        self._debouncer.cancel()

    def _run(self, text: str, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if not text.strip():
                self.results = []
                self.loading = False
                self._idle.set()
                return
            self.loading = True

        try:
            results = self._search(self._store, text, self._sources)
        except Exception:
            logger.warning("Search for %r failed", text, exc_info=True)
            results = []

        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding stale search results for %r", text)
                return
            self.results = results
            self.loading = False
            self._idle.set()
