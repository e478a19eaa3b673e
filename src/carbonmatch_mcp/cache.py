"""Time-limited cache of per-entity search results."""

import time
from typing import Any


class TTLCache:
    """Search results keyed by ``name|entity type|language``.

    Values are tuples of MatchResult so a cached entry can't be mutated by a caller;
    the engine hands out a fresh list on every hit. An empty tuple records a search
    that found nothing and is returned as a hit, so a miss is not retried (and the
    language model not asked again) until the entry expires. ``get`` returns None
    only when there is no live entry.

    Once over ``max_size``, expired entries are dropped first, then the oldest writes.
    Not synchronised: two concurrent searches for the same key may both store a result,
    last writer wins.
    """

    def __init__(self, ttl: float, max_size: int = 5000):
        self._ttl = ttl
        self._max_size = max_size
        self._data: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        """Cached results for a key (possibly an empty tuple), or None if absent or expired."""
        if key in self._data:
            ts, result = self._data[key]
            if time.time() - ts < self._ttl:
                return result
            del self._data[key]
        return None

    def set(self, key: str, value: Any) -> None:
        """Store a result tuple, including an empty one for a search with no matches."""
        self._data[key] = (time.time(), value)
        if len(self._data) > self._max_size:
            self._evict()

    def _evict(self) -> None:
        now = time.time()
        expired = [k for k, (ts, _) in self._data.items() if now - ts >= self._ttl]
        for k in expired:
            del self._data[k]
        if len(self._data) > self._max_size:
            oldest = sorted(self._data, key=lambda k: self._data[k][0])
            for k in oldest[:len(self._data) - self._max_size]:
                del self._data[k]

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        """Keys of entries that have not expired yet."""
        now = time.time()
        return [k for k, (ts, _) in self._data.items() if now - ts < self._ttl]

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._data)
