"""Response cache and its key-value store.

Provides get_kv_store() / set_kv_store() to swap implementations:
- InMemoryKeyValueStore for development and testing
- RedisKeyValueStore for production
"""

from shared.cache.config import CacheConfig, clamp_ttl
from shared.cache.keys import cache_key
from shared.cache.memory_adapter import InMemoryKeyValueStore
from shared.cache.metrics import CacheMetrics, CacheMetricsSnapshot
from shared.cache.port import CacheError, KeyValueStore
from shared.cache.redis_adapter import RedisKeyValueStore
from shared.cache.response_cache import CachedResponse, ResponseCache

__all__ = [
    "CacheConfig",
    "CacheError",
    "CacheMetrics",
    "CacheMetricsSnapshot",
    "CachedResponse",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "ResponseCache",
    "cache_key",
    "clamp_ttl",
    "get_kv_store",
    "reset_kv_store",
    "set_kv_store",
]

_current_store: KeyValueStore | None = None


def get_kv_store() -> KeyValueStore:
    """Return the current key-value store. Defaults to InMemoryKeyValueStore."""
    global _current_store
    if _current_store is None:
        _current_store = InMemoryKeyValueStore()
    return _current_store


def set_kv_store(store: KeyValueStore) -> None:
    """Override the active key-value store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_kv_store() -> None:
    """Reset to the default store."""
    global _current_store
    _current_store = None
