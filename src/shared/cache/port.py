"""Key-value store port (abstract interface).

The minimal contract the response cache needs from its backing store.
Adapters raise ``CacheError`` for any backend failure; the cache layer
catches and counts it, so callers above the cache never see it.
"""

from abc import ABC, abstractmethod


class CacheError(Exception):
    """Key-value store failure or timeout. Always non-fatal to callers."""

    code = "CACHE_ERROR"
    retryable = True

    def __init__(self, message: str, details=None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None when absent or expired."""
        ...

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete one key. Returns True when something was removed."""
        ...

    @abstractmethod
    def scan_delete(self, pattern: str, batch_size: int = 500) -> int:
        """Delete every key matching a glob ``pattern``.

        Keys are enumerated incrementally and removed in batches of
        ``batch_size``; implementations must never enumerate the whole
        keyspace in one blocking call. Returns the number of keys deleted.
        """
        ...

    @abstractmethod
    def ping(self) -> bool:
        ...
