"""Thread-safe LRU cache with per-entry expiry.

Used for assistant metadata, which is read on every chat request but
changes only when someone edits the assistant.  Calendar availability is
never cached: it must be read fresh before every booking.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 128
DEFAULT_TTL_SECONDS = 300.0


class LRUCache:
    """Least-recently-used cache bounded by entry count, with a TTL per entry."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock
        # key -> (value, expires_at)
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the live value for *key* (promoting it) or ``None``."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._store[key]
                logger.debug("Cache: %s expired", key)
                return None
            self._store.move_to_end(key)
            return value

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._store.pop(key, None)
            self._store[key] = (value, self._clock() + self._ttl)
            while len(self._store) > self._max_entries:
                evicted, _ = self._store.popitem(last=False)
                logger.debug("Cache: evicted %s", evicted)

    def invalidate(self, key: str) -> bool:
        """Remove *key*.  Returns ``True`` if it was present."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
