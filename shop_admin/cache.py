"""In-process cache of rendered listing views, keyed by route path."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ViewCache:
    """Keep the payload of a listing route until it expires or is invalidated."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[path]
                return None
            return value

    def set(self, path: str, value: Any) -> None:
        with self._lock:
            self._entries[path] = (self._clock() + self._ttl, value)

    def invalidate(self, path: str) -> None:
        """Drop ``path`` and every cached variant of it (``path?...``)."""

        with self._lock:
            stale = [key for key in self._entries if key == path or key.startswith(f"{path}?")]
            for key in stale:
                del self._entries[key]
        logger.debug("Invalidated %d cached view(s) for %s", len(stale), path)
