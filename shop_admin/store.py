"""REST client for the hosted relational data service.

The service exposes every table as a resource under ``/rest/v1/<table>`` and
accepts filters in the query string (``column=op.value``).  The client keeps
the wire details in one place so the repository can speak in terms of tables,
columns and filters.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

import requests

from .config import AppConfig
from .errors import StoreError

logger = logging.getLogger(__name__)


class StoreClient:
    """Thin wrapper around :class:`requests.Session` for the data service."""

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Table resources
    # ------------------------------------------------------------------
    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[Mapping[str, Any]] = None,
        ilike: Optional[Mapping[str, str]] = None,
        or_: Optional[str] = None,
        gte: Optional[Mapping[str, Any]] = None,
        lte: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return the rows of ``table`` matching every given filter.

        Args:
            table: Name of the table resource, e.g. ``"order"``.
            columns: Column list, including embedded resources such as
                ``"*, user(*)"``.
            eq: Exact-match filters.
            ilike: Case-insensitive substring filters.  Values are wrapped in
                wildcards by the client.
            or_: Raw ``or`` filter expression, e.g.
                ``"name.ilike.*x*,slug.ilike.*x*"``.
            gte: Lower bounds (inclusive).
            lte: Upper bounds (inclusive).
            order: Column to sort on.
            descending: Sort direction for ``order``.
            limit: Maximum number of rows.
        """

        params: list[tuple[str, str]] = [("select", columns)]
        params.extend(_filters("eq", eq))
        params.extend((column, f"ilike.*{value}*") for column, value in (ilike or {}).items())
        if or_:
            params.append(("or", f"({or_})"))
        params.extend(_filters("gte", gte))
        params.extend(_filters("lte", lte))
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        return self._request("GET", table, params=params)

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Insert ``rows`` and return them as stored."""

        return self._request(
            "POST",
            table,
            json=[dict(row) for row in rows],
            headers={"Prefer": "return=representation"},
        )

    def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Update the rows matching ``eq`` and return them as stored."""

        return self._request(
            "PATCH",
            table,
            params=list(_filters("eq", eq)),
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )

    def delete(self, table: str, *, eq: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Delete the rows matching ``eq`` and return them."""

        return self._request(
            "DELETE",
            table,
            params=list(_filters("eq", eq)),
            headers={"Prefer": "return=representation"},
        )

    # ------------------------------------------------------------------
    # Session / identity
    # ------------------------------------------------------------------
    def current_user_id(self, access_token: Optional[str]) -> Optional[str]:
        """Return the identifier of the user owning ``access_token``.

        ``None`` is returned when no token is supplied or when the identity
        endpoint does not recognise it.
        """

        if not access_token:
            return None
        try:
            response = self._session.get(
                f"{self._config.auth_endpoint}/user",
                headers=self._headers(access_token),
                timeout=self._config.request_timeout,
            )
        except requests.RequestException as exc:
            raise StoreError(str(exc)) from exc
        if response.status_code in (401, 403):
            return None
        if not response.ok:
            raise StoreError(_error_message(response), response.status_code)
        payload = _json_payload(response)
        user_id = payload.get("id") if isinstance(payload, dict) else None
        return str(user_id) if user_id is not None else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _headers(self, access_token: Optional[str] = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._config.store_key:
            headers["apikey"] = self._config.store_key
        token = access_token or self._config.store_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[list[tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> list[dict[str, Any]]:
        url = f"{self._config.rest_endpoint}/{table}"
        merged_headers = self._headers()
        if headers:
            merged_headers.update(headers)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=merged_headers,
                timeout=self._config.request_timeout,
            )
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, table, exc)
            raise StoreError(str(exc)) from exc

        if not response.ok:
            message = _error_message(response)
            logger.error("%s %s returned %s: %s", method, table, response.status_code, message)
            raise StoreError(message, response.status_code)

        if not response.content:
            return []
        payload = _json_payload(response)
        if isinstance(payload, dict):
            return [payload]
        return list(payload)


def _filters(operator: str, values: Optional[Mapping[str, Any]]) -> Iterable[tuple[str, str]]:
    for column, value in (values or {}).items():
        yield column, f"{operator}.{_encode(value)}"


def _encode(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _json_payload(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        logger.error("Unreadable reply from %s: %s", response.url, response.text[:200])
        raise StoreError("The data service returned a malformed response", response.status_code) from exc


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        for key in ("message", "msg", "error_description", "error"):
            if payload.get(key):
                return str(payload[key])
    return response.text or f"HTTP {response.status_code}"
