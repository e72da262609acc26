"""ReviewListing — assembled, cached list responses.

Two read paths share one response contract:

    {
        "reviews": [...],
        "pagination": {"page", "limit", "total", "totalPages", "hasNext", "hasPrev"},
        "filters": {...},                  # echoed, defined filters only
        "meta": {"cached", "cacheKey"?, "processedAt", "source"}
    }

- ``list_reviews``: the persistent store (source ``store``, endpoint ``reviews``)
- ``list_upstream``: raw records pulled from the upstream source (or its
  fallback), normalized permissively on every miss (endpoint ``hostaway``)

``review_stats`` serves counts, rating and channel distributions and monthly
trends for the stored reviews under endpoint ``reviews:stats``.

All three are read-through: a fresh cached entry is served as-is; a missing or
stale one is recomputed and written back.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from dateutil.relativedelta import relativedelta

from reviews.errors import NormalizationFailure, UpstreamUnavailable
from reviews.review.normalization import NormalizationOptions, NormalizationResult, normalize_reviews
from reviews.review.querying import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    ReviewFilterOptions,
    SortField,
    SortOrder,
    build_pagination,
    filter_reviews,
    paginate,
    sort_reviews,
    validate_page,
)
from reviews.review.review import NormalizedReview, format_utc, utc_now
from reviews.store.port import TREND_MONTHS, ReviewStore
from shared.cache import ResponseCache

logger = structlog.get_logger(__name__)

STORE_ENDPOINT = "reviews"
# Sits under the "reviews" tag so list-level invalidation clears it too
STATS_ENDPOINT = "reviews:stats"
UPSTREAM_ENDPOINT = "hostaway"
UPSTREAM_DEFAULT_RATING = 5.0

RawFetcher = Callable[[], Iterable[Mapping[str, Any]]]


@dataclass(frozen=True)
class ReviewQuery:
    filters: ReviewFilterOptions = field(default_factory=ReviewFilterOptions)
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    sort_field: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC

    def cache_params(self) -> dict[str, Any]:
        return {
            **self.filters.to_params(),
            "page": self.page,
            "limit": self.limit,
            "sortBy": self.sort_field.value,
            "sortOrder": self.sort_order.value,
        }


def _assemble(
    reviews: list[NormalizedReview],
    pagination: dict[str, Any],
    filters: ReviewFilterOptions,
    source: str,
    **extra: Any,
) -> dict[str, Any]:
    return {
        "reviews": [review.to_json_dict() for review in reviews],
        "pagination": pagination,
        "filters": filters.to_params(),
        "meta": {"cached": False, "processedAt": utc_now(), "source": source},
        **extra,
    }


class ReviewListingService:
    def __init__(
        self,
        store: ReviewStore,
        cache: ResponseCache,
        upstream: RawFetcher | None = None,
        fallback: RawFetcher | None = None,
        max_page_limit: int = MAX_PAGE_LIMIT,
        default_rating: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.upstream = upstream
        self.fallback = fallback
        self.max_page_limit = max_page_limit
        self.default_rating = UPSTREAM_DEFAULT_RATING if default_rating is None else default_rating
        self._clock = clock or (lambda: datetime.now(UTC))

    def _read_through(self, key: str, compute: Callable[[], dict[str, Any]], query_params: dict[str, Any]) -> dict[str, Any]:
        cached = self.cache.get(key)
        if cached is not None and not self.cache.should_refresh(key):
            logger.info("Serving cached response", cache_key=key)
            return cached.response

        logger.debug("Cache miss or refresh needed", cache_key=key, cached=cached is not None)
        response = compute()
        if not self.cache.set(key, response, query_params=query_params):
            logger.warning("Failed to cache response", cache_key=key)
        return response

    # ------------------------------------------------------------------
    # Store-backed listing
    # ------------------------------------------------------------------
    def list_reviews(self, query: ReviewQuery | None = None) -> dict[str, Any]:
        query = query or ReviewQuery()
        validate_page(query.page, query.limit, self.max_page_limit)
        params = query.cache_params()
        key = self.cache.key(STORE_ENDPOINT, params)
        return self._read_through(key, lambda: self._store_listing(query), params)

    def _store_listing(self, query: ReviewQuery) -> dict[str, Any]:
        reviews, total = self.store.query(query.filters, query.sort_field, query.sort_order, query.page, query.limit)
        stats = self.store.stats(query.filters)
        pagination = build_pagination(query.page, query.limit, total)
        return _assemble(reviews, pagination.to_dict(), query.filters, "store", stats=stats.summary())

    def preload(self, queries: Iterable[ReviewQuery]) -> int:
        """Warm store listings that are missing or due for refresh."""
        by_key: dict[str, ReviewQuery] = {}
        for query in queries:
            validate_page(query.page, query.limit, self.max_page_limit)
            by_key[self.cache.key(STORE_ENDPOINT, query.cache_params())] = query
        return self.cache.preload(
            [query.cache_params() for query in by_key.values()],
            lambda params: self._store_listing(by_key[self.cache.key(STORE_ENDPOINT, params)]),
            endpoint=STORE_ENDPOINT,
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    def review_stats(self, filters: ReviewFilterOptions | None = None) -> dict[str, Any]:
        """Counts, distributions and monthly trends for the stored reviews, read-through cached."""
        filters = filters or ReviewFilterOptions()
        params = filters.to_params()
        key = self.cache.key(STATS_ENDPOINT, params)

        def compute() -> dict[str, Any]:
            since = format_utc(self._clock() - relativedelta(months=TREND_MONTHS))
            stats = self.store.stats(filters, trends_since=since)
            return {
                "stats": stats.to_dict(),
                "filters": params,
                "meta": {"cached": False, "processedAt": utc_now(), "source": "store"},
            }

        return self._read_through(key, compute, params)

    # ------------------------------------------------------------------
    # Upstream listing
    # ------------------------------------------------------------------
    def fetch_raw(self) -> tuple[list[Mapping[str, Any]], str]:
        """Pull raw records from upstream, falling back when it fails."""
        if self.upstream is not None:
            try:
                return list(self.upstream()), "upstream"
            except Exception as exc:
                if self.fallback is None:
                    raise UpstreamUnavailable(f"Upstream review source failed: {exc}") from exc
                logger.warning("Upstream review source failed, using fallback", error=str(exc))

        if self.fallback is None:
            raise UpstreamUnavailable("No upstream review source configured")
        try:
            return list(self.fallback()), "fallback"
        except Exception as exc:
            raise UpstreamUnavailable(f"Fallback review source failed: {exc}") from exc

    def normalize_upstream(self, raws: list[Mapping[str, Any]]) -> NormalizationResult:
        result = normalize_reviews(raws, NormalizationOptions(strict=False, default_rating=self.default_rating))
        if not result.success:
            raise NormalizationFailure(None, "no upstream review could be normalized")
        return result

    def list_upstream(self, query: ReviewQuery | None = None) -> dict[str, Any]:
        query = query or ReviewQuery()
        validate_page(query.page, query.limit, self.max_page_limit)
        params = {**query.filters.to_params(), "page": query.page, "limit": query.limit}
        key = self.cache.key(UPSTREAM_ENDPOINT, params)

        def compute() -> dict[str, Any]:
            raws, source = self.fetch_raw()
            result = self.normalize_upstream(raws)
            matching = sort_reviews(filter_reviews(result.items, query.filters), SortField.CREATED_AT, SortOrder.DESC)
            page, pagination = paginate(matching, query.page, query.limit, self.max_page_limit)
            logger.info(
                "Upstream reviews assembled",
                source=source,
                fetched=len(raws),
                normalized=result.processed_count,
                returned=len(page),
                warnings=len(result.warnings),
            )
            return _assemble(page, pagination.to_dict(), query.filters, source)

        return self._read_through(key, compute, params)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    def ingest(self, raws: Iterable[Mapping[str, Any]] | None = None, strict: bool = False) -> NormalizationResult:
        """Normalize raw records and store them, superseding earlier versions.

        With no ``raws`` the upstream source (or its fallback) is pulled.
        """
        if raws is None:
            raws, _ = self.fetch_raw()
        result = normalize_reviews(raws, NormalizationOptions(strict=strict, default_rating=self.default_rating))
        if result.success and result.items:
            self.store.add(result.items)
            for listing_id in sorted({review.listing_id for review in result.items}):
                self.cache.invalidate_listing(listing_id)
            self.cache.invalidate_review_lists()
        logger.info(
            "Reviews ingested",
            stored=len(result.items),
            skipped=result.skipped_count,
            success=result.success,
        )
        return result
