import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from conftest import make_config

from shop_admin.errors import StoreError
from shop_admin.notifications import Notifier
from shop_admin.store import StoreClient


def _response(status_code: int, payload=None, text: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if payload is not None:
        response._content = json.dumps(payload).encode()
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = text.encode()
    return response


def _client(response: requests.Response) -> tuple[StoreClient, MagicMock]:
    session = MagicMock(spec=requests.Session)
    session.request.return_value = response
    session.get.return_value = response
    return StoreClient(make_config(), session=session), session


def test_select_builds_filters_ordering_and_limit() -> None:
    client, session = _client(_response(200, [{"created_at": "2024-03-01T00:00:00+00:00"}]))

    rows = client.select(
        "finance",
        "created_at",
        eq={"submittedby": "Cashier"},
        gte={"created_at": datetime(2024, 3, 1, tzinfo=timezone.utc)},
        order="created_at",
        descending=True,
        limit=1,
    )

    assert rows == [{"created_at": "2024-03-01T00:00:00+00:00"}]
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("GET", "http://store.test/rest/v1/finance")
    assert kwargs["params"] == [
        ("select", "created_at"),
        ("submittedby", "eq.Cashier"),
        ("created_at", "gte.2024-03-01T00:00:00+00:00"),
        ("order", "created_at.desc"),
        ("limit", "1"),
    ]
    assert kwargs["headers"]["apikey"] == "service-key"
    assert kwargs["headers"]["Authorization"] == "Bearer service-key"
    assert kwargs["timeout"] == 5.0


def test_select_wraps_ilike_and_or_filters() -> None:
    client, session = _client(_response(200, []))

    client.select("product", ilike={"title": "cola"})
    assert ("title", "ilike.*cola*") in session.request.call_args.kwargs["params"]

    client.select("finance", or_="bank_name.ilike.*cola*,mode_of_payment.ilike.*cola*")
    assert ("or", "(bank_name.ilike.*cola*,mode_of_payment.ilike.*cola*)") in session.request.call_args.kwargs["params"]


def test_update_asks_for_representation() -> None:
    client, session = _client(_response(200, [{"id": 1, "status": "shipped"}]))

    rows = client.update("order", {"status": "shipped"}, eq={"id": 1})

    assert rows == [{"id": 1, "status": "shipped"}]
    kwargs = session.request.call_args.kwargs
    assert session.request.call_args.args[0] == "PATCH"
    assert kwargs["params"] == [("id", "eq.1")]
    assert kwargs["json"] == {"status": "shipped"}
    assert kwargs["headers"]["Prefer"] == "return=representation"


def test_error_response_raises_store_error_with_store_message() -> None:
    client, _ = _client(_response(400, {"message": 'column "titel" does not exist'}))

    with pytest.raises(StoreError) as excinfo:
        client.select("product", ilike={"titel": "cola"})

    assert excinfo.value.message == 'column "titel" does not exist'
    assert excinfo.value.status_code == 400


def test_transport_failure_raises_store_error() -> None:
    client, session = _client(_response(200, []))
    session.request.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(StoreError, match="connection refused"):
        client.select("order")


def test_empty_body_yields_no_rows() -> None:
    client, _ = _client(_response(204))

    assert client.delete("category", eq={"id": 3}) == []


def test_current_user_id_reads_identity_endpoint() -> None:
    client, session = _client(_response(200, {"id": "8c1e", "email": "admin@example.com"}))

    assert client.current_user_id("user-token") == "8c1e"
    assert session.get.call_args.args[0] == "http://store.test/auth/v1/user"
    assert session.get.call_args.kwargs["headers"]["Authorization"] == "Bearer user-token"


def test_current_user_id_is_none_without_a_valid_session() -> None:
    client, session = _client(_response(401, {"msg": "invalid JWT"}))

    assert client.current_user_id("expired") is None
    assert client.current_user_id(None) is None
    assert session.get.call_count == 1


def test_notifier_posts_to_webhook_and_swallows_failures() -> None:
    session = MagicMock(spec=requests.Session)
    session.post.return_value = _response(200, {})
    notifier = Notifier(make_config(notify_url="http://hooks.test/notify"), session=session)

    assert notifier.send("8c1e", "shipped 🚀") is True
    assert session.post.call_args.kwargs["json"] == {"recipient": "8c1e", "message": "shipped 🚀"}

    session.post.side_effect = requests.Timeout("slow hook")
    assert notifier.send(None, "shipped 🚀") is False


def test_notifier_without_webhook_only_logs() -> None:
    session = MagicMock(spec=requests.Session)
    notifier = Notifier(make_config(), session=session)

    assert notifier.send("8c1e", "shipped 🚀") is False
    session.post.assert_not_called()


def test_malformed_success_body_raises_store_error() -> None:
    client, _ = _client(_response(200, text="<html>gateway</html>"))

    with pytest.raises(StoreError, match="malformed"):
        client.select("order")


def test_current_user_id_rejects_malformed_identity_reply() -> None:
    client, _ = _client(_response(200, text="<html>gateway</html>"))

    with pytest.raises(StoreError, match="malformed"):
        client.current_user_id("user-token")
