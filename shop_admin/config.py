"""Runtime settings of the admin backend, read from ``SHOP_ADMIN_*`` variables.

A local ``.env`` file is honoured so developers can point the backend at a
staging data service without exporting variables by hand.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class AppConfig:
    """Settings shared by the store client, notifier and services.

    Attributes:
        store_url: Base URL of the hosted relational data service.  The REST
            resources live under ``/rest/v1`` and the identity endpoint under
            ``/auth/v1``.
        store_key: Optional API key for the data service.  It is sent both as
            the ``apikey`` header and as the default bearer token.
        notify_url: Optional webhook receiving admin notifications.  When it
            is missing notifications are only written to the log.
        timezone: IANA timezone used when formatting chart buckets and when
            resolving named periods such as ``daily`` or ``monthly``.
        ledger_submitter: Submitter tag whose rows make up the ledger summary.
        search_debounce_ms: Quiescence window for search-as-you-type.
        request_timeout: Timeout in seconds for every outbound HTTP call.
        view_cache_ttl: Lifetime in seconds of cached listing views.
    """

    store_url: str
    store_key: Optional[str]
    notify_url: Optional[str]
    timezone: str
    ledger_submitter: str
    search_debounce_ms: int
    request_timeout: float
    view_cache_ttl: float

    @property
    def rest_endpoint(self) -> str:
        """Return the base URL of the table resources."""

        return f"{self.store_url.rstrip('/')}/rest/v1"

    @property
    def auth_endpoint(self) -> str:
        """Return the base URL of the session/identity endpoint."""

        return f"{self.store_url.rstrip('/')}/auth/v1"

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000.0


def load_config() -> AppConfig:
    """Build an :class:`AppConfig`; unset variables fall back to local-development defaults."""

    return AppConfig(
        store_url=getenv_with_default("SHOP_ADMIN_STORE_URL", "http://127.0.0.1:54321"),
        store_key=getenv_with_default("SHOP_ADMIN_STORE_KEY"),
        notify_url=getenv_with_default("SHOP_ADMIN_NOTIFY_URL"),
        timezone=getenv_with_default("SHOP_ADMIN_TIMEZONE", "UTC"),
        ledger_submitter=getenv_with_default("SHOP_ADMIN_LEDGER_SUBMITTER", "Cashier"),
        search_debounce_ms=int(getenv_with_default("SHOP_ADMIN_SEARCH_DEBOUNCE_MS", "300")),
        request_timeout=float(getenv_with_default("SHOP_ADMIN_REQUEST_TIMEOUT", "30")),
        view_cache_ttl=float(getenv_with_default("SHOP_ADMIN_VIEW_CACHE_TTL", "60")),
    )


def getenv_with_default(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read ``name`` from the environment; empty values count as unset."""

    value = os.environ.get(name, "").strip()
    return value or default
