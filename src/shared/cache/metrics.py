"""Cache metrics collector.

One collector per ``ResponseCache`` instance (or shared explicitly by
passing the same instance to several caches). Counters only go up until
``reset()`` is called.
"""

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class CacheMetricsSnapshot:
    hits: int
    misses: int
    sets: int
    deletes: int
    errors: int
    total_get_requests: int
    last_reset: str

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total_get_requests if self.total_get_requests else 0.0

    @property
    def error_rate(self) -> float:
        return self.errors / self.total_get_requests if self.total_get_requests else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "errors": self.errors,
            "totalGetRequests": self.total_get_requests,
            "hitRate": round(self.hit_rate, 4),
            "errorRate": round(self.error_rate, 4),
            "lastReset": self.last_reset,
        }


class CacheMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._sets = 0
            self._deletes = 0
            self._errors = 0
            self._last_reset = datetime.now(UTC).isoformat()

    def record_hit(self) -> None:
        with self._lock:
            self._hits += 1

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1

    def record_set(self) -> None:
        with self._lock:
            self._sets += 1

    def record_deletes(self, count: int = 1) -> None:
        with self._lock:
            self._deletes += count

    def record_error(self) -> None:
        with self._lock:
            self._errors += 1

    def snapshot(self) -> CacheMetricsSnapshot:
        with self._lock:
            return CacheMetricsSnapshot(
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                deletes=self._deletes,
                errors=self._errors,
                # every GET ends in exactly one of hit or miss
                total_get_requests=self._hits + self._misses,
                last_reset=self._last_reset,
            )
