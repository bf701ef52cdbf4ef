import threading
import time

from conftest import FakeStore

from shop_admin.search import (
    ROUTE_PREFIXES,
    SEARCH_SOURCES,
    Debouncer,
    SearchSession,
    display_label,
    fan_out_search,
    route_for,
)


def _searchable_store() -> FakeStore:
    return FakeStore(
        {
            "product": [{"id": 1, "title": "Coca-Cola 500ml"}, {"id": 2, "title": "Cola Zero"}],
            "products_materials": [{"id": 3, "product_id": "cola-mix"}],
            "order": [{"id": 4, "slug": "order-cola-44"}, {"id": 5, "slug": "order-water-45"}],
            "materials": [{"id": 6, "name": "Cola concentrate"}],
            "expenses": [{"id": 7, "item": "cola syrup"}],
            "users": [{"id": 8, "name": "Nicola"}],
            "finance": [
                {"id": 9, "mode_of_payment": "Bank", "bank_name": "Colabank", "amount_paid": 10},
                {"id": 10, "mode_of_payment": "Cash", "amount_paid": 20},
            ],
        }
    )


def test_fan_out_tags_rows_and_keeps_table_then_row_order() -> None:
    results = fan_out_search(_searchable_store(), "cola")

    assert [(result["table"], result["id"]) for result in results] == [
        ("product", 1),
        ("product", 2),
        ("products_materials", 3),
        ("order", 4),
        ("materials", 6),
        ("expenses", 7),
        ("users", 8),
        ("finance", 9),
    ]


def test_fan_out_queries_every_table_once() -> None:
    store = _searchable_store()

    fan_out_search(store, "cola")

    assert sorted(table for _, table in store.calls) == sorted(source.table for source in SEARCH_SOURCES)


def test_failing_table_contributes_nothing_and_does_not_fail_the_search() -> None:
    store = _searchable_store()
    store.fail_tables.add("product")

    results = fan_out_search(store, "cola")

    tables = {result["table"] for result in results}
    assert "product" not in tables
    assert tables == {"products_materials", "order", "materials", "expenses", "users", "finance"}
    assert all(result["table"] != "product" for result in results)


def test_blank_query_does_not_contact_the_store() -> None:
    store = _searchable_store()

    assert fan_out_search(store, "   ") == []
    assert fan_out_search(store, "") == []
    assert store.calls == []


def test_route_prefixes_are_explicit_per_table() -> None:
    assert route_for({"table": "product", "id": 1}) == "/admin/search/product/1"
    assert route_for({"table": "user_ledger", "id": 7}) == "/admin/search/user_ledger/7"
    assert route_for({"table": "category", "id": 2}) == "/admin/search/category/2"
    assert set(ROUTE_PREFIXES) >= {source.table for source in SEARCH_SOURCES}


def test_display_label_prefers_title_then_other_fields() -> None:
    assert display_label({"title": "Cola", "name": "ignored"}) == "Cola"
    assert display_label({"item": "Caps"}) == "Caps"
    assert display_label({"bank_name": "Colabank"}) == "Colabank"
    assert display_label({"id": 3}) is None


def test_debouncer_runs_only_the_last_call() -> None:
    calls = []
    done = threading.Event()

    def record(value):
        calls.append(value)
        done.set()

    debounced = Debouncer(0.05, record)
    for value in ("a", "b", "c"):
        debounced(value)

    assert done.wait(2)
    time.sleep(0.1)
    assert calls == ["c"]


def test_typing_quickly_issues_a_single_search_for_the_final_text() -> None:
    issued = []

    def search(store, text, sources):
        issued.append(text)
        return [{"id": 1, "table": "product", "title": text}]

    session = SearchSession(store=None, wait=0.05, search=search)
    for text in ("c", "co", "col", "cola"):
        session.type(text)

    assert session.wait_idle(2)
    time.sleep(0.1)
    assert issued == ["cola"]
    assert session.results == [{"id": 1, "table": "product", "title": "cola"}]
    assert session.loading is False


def test_late_response_for_superseded_input_is_discarded() -> None:
    started = threading.Event()
    release = threading.Event()
    stale_finished = threading.Event()

    def search(store, text, sources):
        if text == "co":
            started.set()
            release.wait(2)
            stale_finished.set()
            return [{"id": 1, "table": "product", "title": "stale"}]
        return [{"id": 2, "table": "product", "title": "fresh"}]

    session = SearchSession(store=None, wait=0.01, search=search)
    session.type("co")
    assert started.wait(2)

    session.type("cola")
    assert session.wait_idle(2)
    release.set()
    assert stale_finished.wait(2)
    time.sleep(0.05)

    assert session.results == [{"id": 2, "table": "product", "title": "fresh"}]


def test_blank_input_clears_results_without_searching() -> None:
    issued = []
    session = SearchSession(store=None, wait=0.01, search=lambda store, text, sources: issued.append(text) or [])

    session.type("   ")

    assert session.wait_idle(2)
    assert issued == []
    assert session.results == []


def test_selecting_a_result_clears_the_search_and_returns_its_route() -> None:
    session = SearchSession(store=_searchable_store(), wait=0.01)
    session.type("cola")
    assert session.wait_idle(2)
    chosen = session.results[0]

    route = session.select(chosen)

    assert route == "/admin/search/product/1"
    assert session.query == ""
    assert session.results == []


class _RendezvousStore(FakeStore):
    """Every select blocks until all sources are being queried at once."""

    def __init__(self, parties: int) -> None:
        super().__init__(_searchable_store().tables)
        self.barrier = threading.Barrier(parties, timeout=2)

    def select(self, table, columns="*", **filters):
        self.barrier.wait()
        return super().select(table, columns, **filters)


def test_fan_out_queries_all_tables_concurrently() -> None:
    store = _RendezvousStore(len(SEARCH_SOURCES))

    results = fan_out_search(store, "cola")

    assert not store.barrier.broken
    assert {result["table"] for result in results} == {source.table for source in SEARCH_SOURCES}


def test_failing_search_settles_the_session_with_no_results() -> None:
    def search(store, text, sources):
        raise RuntimeError("search backend down")

    session = SearchSession(store=None, wait=0.01, search=search)
    session.results = [{"id": 1, "table": "product"}]

    session.type("cola")

    assert session.wait_idle(2)
    assert session.results == []
    assert session.loading is False
