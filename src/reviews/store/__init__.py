"""Review store factory.

Provides get_review_store() / set_review_store() to swap implementations:
- InMemoryReviewStore for development and testing
- SqlReviewStore for SQLite / PostgreSQL
"""

from reviews.store.memory_adapter import InMemoryReviewStore
from reviews.store.port import ReviewStats, ReviewStore, ReviewStoreTransaction
from reviews.store.sql_adapter import SqlReviewStore, create_store_engine

__all__ = [
    "InMemoryReviewStore",
    "ReviewStats",
    "ReviewStore",
    "ReviewStoreTransaction",
    "SqlReviewStore",
    "create_store_engine",
    "get_review_store",
    "reset_review_store",
    "set_review_store",
]

_current_store: ReviewStore | None = None


def get_review_store() -> ReviewStore:
    """Return the current review store. Defaults to InMemoryReviewStore."""
    global _current_store
    if _current_store is None:
        _current_store = InMemoryReviewStore()
    return _current_store


def set_review_store(store: ReviewStore) -> None:
    """Override the active review store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_review_store() -> None:
    """Reset to the default store."""
    global _current_store
    _current_store = None
