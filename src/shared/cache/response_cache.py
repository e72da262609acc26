"""Response cache — memoizes assembled API responses in a key-value store.

The cache is an optional accelerator. Every operation here absorbs
``CacheError`` (and corrupt entries), counts it in the metrics collector
and degrades to a miss or a no-op; nothing propagates to the caller.

Stored entry layout (JSON):

    {
        "response": {...},                 # the assembled payload
        "metadata": {
            "key": "...",
            "ttl": 312,                    # effective TTL in seconds
            "createdAt": "2024-01-15T14:30:00.000Z",
            "source": "store",
            "queryParams": {...}
        },
        "cachedAt": "2024-01-15T14:30:00.000Z"
    }

Staleness is only checked lazily, on read; there is no background refresh.
"""

from __future__ import annotations

import json
import random
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from shared.cache.config import TTL_JITTER_SECONDS, CacheConfig
from shared.cache.keys import cache_key
from shared.cache.metrics import CacheMetrics, CacheMetricsSnapshot
from shared.cache.port import CacheError, KeyValueStore

logger = structlog.get_logger(__name__)

HEALTH_PROBE_TTL = 10

# Failures treated as "entry unusable": backend errors and undecodable payloads
_ENTRY_ERRORS = (CacheError, ValueError, KeyError, TypeError)


def _iso_millis(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class CachedResponse:
    response: dict[str, Any]
    metadata: dict[str, Any]


class ResponseCache:
    def __init__(
        self,
        store: KeyValueStore,
        config: CacheConfig | None = None,
        metrics: CacheMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.config = config or CacheConfig()
        self._metrics = metrics or CacheMetrics()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    def key(self, endpoint: str, params: Mapping[str, Any] | None = None) -> str:
        return cache_key(endpoint, params, self.config.key_prefix)

    def effective_ttl(self, ttl: int | None = None) -> int:
        """Caller TTL as given, else the configured TTL plus 0–29s of jitter.

        Raises ``ValueError`` for a non-positive caller TTL.
        """
        if ttl is not None:
            if ttl <= 0:
                raise ValueError(f"Cache TTL must be positive, got {ttl}")
            return int(ttl)
        return self.config.ttl + self._rng.randrange(TTL_JITTER_SECONDS)

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------
    def _load(self, key: str) -> dict[str, Any] | None:
        raw = self.store.get(key)
        if raw is None:
            return None
        entry = json.loads(raw)
        if not isinstance(entry, dict) or "response" not in entry or "metadata" not in entry:
            raise ValueError(f"Malformed cache entry at {key}")
        return entry

    def get(self, key: str) -> CachedResponse | None:
        if not self.config.enabled:
            self._metrics.record_miss()
            return None

        try:
            entry = self._load(key)
        except _ENTRY_ERRORS as exc:
            self._metrics.record_error()
            self._metrics.record_miss()
            logger.error("Error retrieving cached response", cache_key=key, error=str(exc))
            return None

        if entry is None:
            self._metrics.record_miss()
            logger.debug("Cache miss", cache_key=key)
            return None

        response = entry["response"]
        meta = response.get("meta") if isinstance(response, dict) else None
        if isinstance(meta, dict):
            meta["cached"] = True
            meta["cacheKey"] = key
            meta["processedAt"] = _iso_millis(self._clock())

        self._metrics.record_hit()
        logger.debug("Cache hit", cache_key=key)
        return CachedResponse(response=response, metadata=entry["metadata"])

    def set(
        self,
        key: str,
        payload: Mapping[str, Any],
        ttl: int | None = None,
        source: str | None = None,
        query_params: Mapping[str, Any] | None = None,
    ) -> bool:
        if not self.config.enabled:
            logger.debug("Caching disabled, skipping cache set", cache_key=key)
            return False

        try:
            effective_ttl = self.effective_ttl(ttl)
        except ValueError as exc:
            logger.error("Refusing to cache response", cache_key=key, error=str(exc))
            return False

        now = _iso_millis(self._clock())
        meta = payload.get("meta") if isinstance(payload.get("meta"), Mapping) else {}
        entry = {
            "response": payload,
            "metadata": {
                "key": key,
                "ttl": effective_ttl,
                "createdAt": now,
                "source": source or meta.get("source"),
                "queryParams": dict(query_params if query_params is not None else payload.get("filters") or {}),
            },
            "cachedAt": now,
        }

        try:
            stored = self.store.set(key, json.dumps(entry), effective_ttl)
        except (CacheError, TypeError, ValueError) as exc:
            self._metrics.record_error()
            logger.error("Error caching response", cache_key=key, error=str(exc))
            return False

        if not stored:
            self._metrics.record_error()
            logger.error("Failed to cache response", cache_key=key)
            return False

        self._metrics.record_set()
        logger.debug("Cached response", cache_key=key, ttl=effective_ttl)
        return True

    def should_refresh(self, key: str, threshold: float | None = None) -> bool:
        """True when the entry is missing or older than ``threshold`` × its own TTL."""
        threshold = self.config.refresh_threshold if threshold is None else threshold
        try:
            entry = self._load(key)
            if entry is None:
                return True
            metadata = entry["metadata"]
            created_at = datetime.fromisoformat(metadata["createdAt"])
            age = (self._clock() - created_at).total_seconds()
            return age > float(metadata["ttl"]) * threshold
        except _ENTRY_ERRORS as exc:
            self._metrics.record_error()
            logger.error("Error checking cache refresh status", cache_key=key, error=str(exc))
            return True

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------
    def invalidate(self, key: str | None = None, pattern: str | None = None) -> int:
        """Delete one key, a pattern, or (with neither) the whole namespace."""
        deleted = 0
        try:
            if key:
                deleted += 1 if self.store.delete(key) else 0
            if pattern:
                deleted += self.store.scan_delete(pattern, self.config.scan_batch_size)
            if not key and not pattern:
                namespace = f"{self.config.key_prefix}:*"
                deleted = self.store.scan_delete(namespace, self.config.scan_batch_size)
                logger.info("Cleared all cache entries", pattern=namespace, deleted=deleted)
        except CacheError as exc:
            self._metrics.record_error()
            logger.error("Error invalidating cache", cache_key=key, pattern=pattern, error=str(exc))
            return 0

        self._metrics.record_deletes(deleted)
        return deleted

    def invalidate_listing(self, listing_id: int) -> int:
        prefix = self.config.key_prefix
        # Two patterns so listing 5 never clears listing 55
        deleted = self.invalidate(pattern=f"{prefix}:*listingId={listing_id}")
        deleted += self.invalidate(pattern=f"{prefix}:*listingId={listing_id}&*")
        logger.info("Invalidated listing cache", listing_id=listing_id, deleted=deleted)
        return deleted

    def invalidate_review_lists(self) -> int:
        pattern = f"{self.config.key_prefix}:reviews*"
        deleted = self.invalidate(pattern=pattern)
        logger.info("Invalidated review list caches", pattern=pattern, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def info(self, key: str) -> dict[str, Any] | None:
        try:
            raw = self.store.get(key)
            if raw is None:
                return {"exists": False}
            entry = json.loads(raw)
            metadata = entry["metadata"]
            age = (self._clock() - datetime.fromisoformat(metadata["createdAt"])).total_seconds()
        except _ENTRY_ERRORS as exc:
            self._metrics.record_error()
            logger.error("Error getting cache info", cache_key=key, error=str(exc))
            return None

        return {
            "exists": True,
            "metadata": metadata,
            "size": len(raw),
            "ttl": round(max(0.0, float(metadata["ttl"]) - age)),
            "age": round(age),
        }

    def health_check(self) -> dict[str, Any]:
        connected = False
        probe_ok = False
        probe_key = f"{self.config.key_prefix}:health:{self._rng.getrandbits(32):08x}"
        probe_value = json.dumps({"test": True, "timestamp": _iso_millis(self._clock())})
        try:
            connected = self.store.ping()
            self.store.set(probe_key, probe_value, HEALTH_PROBE_TTL)
            probe_ok = self.store.get(probe_key) == probe_value
            self.store.delete(probe_key)
        except CacheError as exc:
            self._metrics.record_error()
            logger.error("Cache health check failed", error=str(exc))

        return {
            "healthy": connected and probe_ok,
            "details": {
                "storeConnected": connected,
                "cacheEnabled": self.config.enabled,
                "testOperation": probe_ok,
                "metrics": self.metrics().to_dict(),
            },
        }

    def preload(
        self,
        queries: Iterable[Mapping[str, Any]],
        fetcher: Callable[[Mapping[str, Any]], Mapping[str, Any]],
        endpoint: str = "reviews",
    ) -> int:
        """Warm entries that are missing or due for refresh. Returns entries written."""
        queries = list(queries)
        logger.info("Starting cache preloading", query_count=len(queries))
        written = 0
        for params in queries:
            key = self.key(endpoint, params)
            if not self.should_refresh(key):
                continue
            try:
                response = fetcher(params)
            except Exception:
                logger.exception("Error preloading cache entry", cache_key=key)
                continue
            if self.set(key, response, query_params=params):
                written += 1
        logger.info("Cache preloading completed", written=written)
        return written

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------
    def metrics(self) -> CacheMetricsSnapshot:
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        self._metrics.reset()
        logger.info("Cache metrics reset")
