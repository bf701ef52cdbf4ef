"""Notification dispatch for admin actions."""
from __future__ import annotations

import logging
from typing import Optional

import requests

from .config import AppConfig

logger = logging.getLogger(__name__)


class Notifier:
    """Send short messages to a user through the configured webhook."""

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()

    def send(self, recipient_id: Optional[str], message: str) -> bool:
        """Dispatch ``message`` to ``recipient_id`` and report whether it left.

        Delivery is fire-and-forget: failures are logged and never raised, so a
        caller that already committed a change is not interrupted by them.
        Without a webhook the message is only logged.
        """

        if not self._config.notify_url:
            logger.info("Notification for %s: %s", recipient_id or "anonymous", message)
            return False

        try:
            response = self._session.post(
                self._config.notify_url,
                json={"recipient": recipient_id, "message": message},
                timeout=self._config.request_timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Notification to %s failed: %s", recipient_id or "anonymous", exc)
            return False
        return True
