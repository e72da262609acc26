"""In-process review store for development and testing.

A single lock serializes transactions, so the conditional update is a
true compare-and-set. Writes are staged on the transaction object and only
applied when the ``with`` block exits cleanly.
"""

from __future__ import annotations

import threading
from collections import Counter, defaultdict
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from reviews.errors import StoreError
from reviews.review.querying import ReviewFilterOptions, SortField, SortOrder, filter_reviews, sort_reviews
from reviews.review.review import AuditLogEntry, NormalizedReview
from reviews.store.port import (
    TREND_MONTHS,
    MonthlyTrend,
    ReviewStats,
    ReviewStore,
    ReviewStoreTransaction,
    check_mutable,
    merge_response_provenance,
    rating_bucket,
)


class _MemoryTransaction(ReviewStoreTransaction):
    def __init__(self, store: InMemoryReviewStore) -> None:
        self._store = store
        self._staged: dict[int, NormalizedReview] = {}
        self._audit: list[AuditLogEntry] = []

    def get(self, review_id: int) -> NormalizedReview | None:
        if review_id in self._staged:
            return self._staged[review_id]
        return self._store._reviews.get(review_id)

    def conditional_update(self, review_id: int, required_current_approved: bool, new_fields: dict[str, Any]) -> int:
        check_mutable(new_fields)
        current = self.get(review_id)
        if current is None or current.approved is not required_current_approved:
            return 0
        changes = dict(new_fields)
        changes["raw_json"] = merge_response_provenance(current.raw_json, new_fields)
        self._staged[review_id] = current.model_copy(update=changes)
        return 1

    def append_audit(self, entry: AuditLogEntry) -> None:
        self._audit.append(entry)

    def commit(self) -> None:
        self._store._reviews.update(self._staged)
        self._store._audit.extend(self._audit)


class InMemoryReviewStore(ReviewStore):
    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._lock = threading.RLock()
        self._reviews: dict[int, NormalizedReview] = {}
        self._audit: list[AuditLogEntry] = []

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout_seconds):
            raise StoreError("Timed out waiting for the review store")
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self) -> Iterator[ReviewStoreTransaction]:
        with self._locked():
            tx = _MemoryTransaction(self)
            yield tx
            tx.commit()

    def get(self, review_id: int) -> NormalizedReview | None:
        with self._locked():
            return self._reviews.get(review_id)

    def add(self, reviews: Iterable[NormalizedReview]) -> int:
        written = 0
        with self._locked():
            for review in reviews:
                existing = self._reviews.get(review.id)
                if existing is not None:
                    review = review.model_copy(
                        update={
                            "approved": existing.approved,
                            "response": existing.response,
                            "response_date": existing.response_date,
                        }
                    )
                self._reviews[review.id] = review
                written += 1
        return written

    def _matching(self, filters: ReviewFilterOptions | None) -> list[NormalizedReview]:
        with self._locked():
            # id order mirrors the SQL adapter's tiebreak
            return filter_reviews(sorted(self._reviews.values(), key=lambda r: r.id), filters)

    def query(
        self,
        filters: ReviewFilterOptions | None = None,
        sort_field: SortField = SortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[NormalizedReview], int]:
        matching = sort_reviews(self._matching(filters), sort_field, sort_order)
        start = (page - 1) * limit
        return matching[start : start + limit], len(matching)

    def stats(self, filters: ReviewFilterOptions | None = None, trends_since: str | None = None) -> ReviewStats:
        matching = self._matching(filters)
        if not matching:
            return ReviewStats()

        approved = sum(1 for review in matching if review.approved)
        ratings = Counter(review.rating for review in matching)
        channels = Counter(review.channel.value for review in matching)

        by_month: dict[str, list[float]] = defaultdict(list)
        for review in matching:
            if trends_since is None or review.created_at >= trends_since:
                by_month[review.created_at[:7]].append(review.rating)
        trends = [
            MonthlyTrend(month=month, count=len(values), average_rating=sum(values) / len(values))
            for month, values in sorted(by_month.items(), reverse=True)[:TREND_MONTHS]
        ]

        return ReviewStats(
            total=len(matching),
            approved=approved,
            pending=len(matching) - approved,
            average_rating=sum(review.rating for review in matching) / len(matching),
            rating_distribution={rating_bucket(rating): ratings[rating] for rating in sorted(ratings)},
            channel_distribution={channel: channels[channel] for channel in sorted(channels)},
            monthly_trends=trends,
        )

    def audit_history(self, review_id: int) -> list[AuditLogEntry]:
        with self._locked():
            entries = [entry for entry in self._audit if entry.review_id == review_id]
        return list(reversed(entries))
