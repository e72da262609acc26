"""In-process key-value store for development and testing.

Thread-safe dict with per-key expiry and glob pattern deletion. Can be
told to fail on demand so tests can exercise the cache layer's
degradation path without a real Redis.
"""

import fnmatch
import threading
import time
from collections.abc import Callable

from shared.cache.port import CacheError, KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, float]] = {}
        self.should_fail: bool = False
        self.scan_calls: list[tuple[str, int]] = []

    def configure(self, should_fail: bool) -> None:
        """Make every subsequent call raise ``CacheError`` (or stop doing so)."""
        self.should_fail = should_fail

    def _check(self) -> None:
        if self.should_fail:
            raise CacheError("In-memory store configured to fail")

    def _live(self, key: str, now: float) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        if entry[1] <= now:
            del self._data[key]
            return False
        return True

    def get(self, key: str) -> str | None:
        self._check()
        with self._lock:
            if not self._live(key, self._clock()):
                return None
            return self._data[key][0]

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        self._check()
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)
        return True

    def delete(self, key: str) -> bool:
        self._check()
        with self._lock:
            return self._data.pop(key, None) is not None

    def scan_delete(self, pattern: str, batch_size: int = 500) -> int:
        self._check()
        self.scan_calls.append((pattern, batch_size))
        with self._lock:
            matched = [key for key in list(self._data) if fnmatch.fnmatchcase(key, pattern)]

        step = max(1, batch_size)
        deleted = 0
        for start in range(0, len(matched), step):
            deleted += self._delete_batch(matched[start : start + step])
        return deleted

    def _delete_batch(self, keys: list[str]) -> int:
        with self._lock:
            now = self._clock()
            live = [key for key in keys if self._live(key, now)]
            for key in live:
                del self._data[key]
        return len(live)

    def ping(self) -> bool:
        self._check()
        return True

    def ttl(self, key: str) -> float | None:
        """Remaining lifetime in seconds, or None when absent."""
        with self._lock:
            now = self._clock()
            if not self._live(key, now):
                return None
            return self._data[key][1] - now

    def keys(self) -> list[str]:
        with self._lock:
            now = self._clock()
            return sorted(key for key in list(self._data) if self._live(key, now))
