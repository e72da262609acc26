"""Reviews bounded context — guest review normalization, listing and approval.

Ingests heterogeneous raw review records, normalizes them into one
canonical shape, serves filtered and paginated listings through a
read-through response cache, and lets operators approve or unapprove
reviews exactly once per transition under concurrent requests.

``build_domain()`` is the composition root: it wires settings, logging,
the review store, the key-value store and the services on top of them.
The HTTP layer resolves the active instance through ``get_domain()``.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from reviews.config import ReviewsSettings, get_settings
from reviews.projections.review_listing import RawFetcher, ReviewListingService
from reviews.review.approval import ApprovalStateMachine
from reviews.sources import sample_reviews
from reviews.store import SqlReviewStore, set_review_store
from reviews.store.port import ReviewStore
from reviews.utils.logging import configure_logging
from shared.cache import (
    CacheMetrics,
    KeyValueStore,
    RedisKeyValueStore,
    ResponseCache,
    get_kv_store,
    set_kv_store,
)

logger = structlog.get_logger(__name__)


@dataclass
class ReviewsDomain:
    settings: ReviewsSettings
    store: ReviewStore
    cache: ResponseCache
    approvals: ApprovalStateMachine
    listings: ReviewListingService


def _default_kv_store(settings: ReviewsSettings) -> KeyValueStore:
    if settings.cache_backend == "redis":
        store = RedisKeyValueStore(settings.redis_url, settings.redis_timeout_seconds)
        set_kv_store(store)
        return store
    return get_kv_store()


def build_domain(
    settings: ReviewsSettings | None = None,
    store: ReviewStore | None = None,
    kv_store: KeyValueStore | None = None,
    upstream: RawFetcher | None = None,
    fallback: RawFetcher | None = sample_reviews,
    configure_logs: bool = True,
) -> ReviewsDomain:
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(settings.environment, settings.log_level, settings.log_dir)

    if store is None:
        store = SqlReviewStore.from_url(settings.database_url, settings.store_timeout_seconds)
    set_review_store(store)

    cache = ResponseCache(
        kv_store if kv_store is not None else _default_kv_store(settings),
        settings.cache_config(),
        CacheMetrics(),
    )

    domain = ReviewsDomain(
        settings=settings,
        store=store,
        cache=cache,
        approvals=ApprovalStateMachine(store, cache),
        listings=ReviewListingService(
            store,
            cache,
            upstream=upstream,
            fallback=fallback,
            max_page_limit=settings.max_page_limit,
            default_rating=settings.normalization_default_rating,
        ),
    )
    logger.info(
        "Reviews domain initialized",
        environment=settings.environment,
        store=type(store).__name__,
        cache_backend=type(cache.store).__name__,
        cache_ttl=settings.cache_default_ttl,
    )
    return domain


_current_domain: ReviewsDomain | None = None


def get_domain() -> ReviewsDomain:
    """Return the active domain, building it from settings on first use."""
    global _current_domain
    if _current_domain is None:
        _current_domain = build_domain()
    return _current_domain


def set_domain(domain: ReviewsDomain) -> None:
    """Override the active domain (useful for tests)."""
    global _current_domain
    _current_domain = domain


def reset_domain() -> None:
    global _current_domain
    _current_domain = None
