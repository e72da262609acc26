"""Review store port (abstract interface).

Defines the contract the approval state machine and the listing read model
need from the persistent store. The one operation that must be atomic is
the approval transition: ``transaction()`` yields a unit of work whose
``conditional_update`` and ``append_audit`` commit together or not at all.

Adapters:
- InMemoryReviewStore for development and testing
- SqlReviewStore (SQLAlchemy Core) for SQLite / PostgreSQL
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any

from reviews.review.querying import ReviewFilterOptions, SortField, SortOrder
from reviews.review.review import AuditLogEntry, NormalizedReview

# Fields a conditional update may write; everything else is fixed at ingestion
MUTABLE_FIELDS = frozenset({"approved", "updated_at", "response", "response_date"})
TREND_MONTHS = 12


def rating_bucket(rating: float) -> str:
    """Distribution key for a rating: ``"9"`` for 9.0, ``"9.4"`` for 9.4."""
    return str(int(rating)) if float(rating).is_integer() else str(rating)


@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    count: int
    average_rating: float

    def to_dict(self) -> dict[str, Any]:
        return {"month": self.month, "count": self.count, "averageRating": round(self.average_rating, 2)}


@dataclass(frozen=True)
class ReviewStats:
    total: int = 0
    approved: int = 0
    pending: int = 0
    average_rating: float = 0.0
    rating_distribution: dict[str, int] = field(default_factory=dict)
    channel_distribution: dict[str, int] = field(default_factory=dict)
    # Newest month first, at most TREND_MONTHS entries
    monthly_trends: list[MonthlyTrend] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "approved": self.approved,
            "pending": self.pending,
            "averageRating": round(self.average_rating, 2),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.summary(),
            "ratingDistribution": dict(self.rating_distribution),
            "channelDistribution": dict(self.channel_distribution),
            "monthlyTrends": [trend.to_dict() for trend in self.monthly_trends],
        }


def merge_response_provenance(raw_json: dict[str, Any], new_fields: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``raw_json`` with ``response`` / ``responseDate`` merged in, other keys kept."""
    merged = dict(raw_json or {})
    if new_fields.get("response") is not None:
        merged["response"] = new_fields["response"]
        merged["responseDate"] = new_fields.get("response_date")
    return merged


def check_mutable(new_fields: dict[str, Any]) -> None:
    unknown = set(new_fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be changed after ingestion: {sorted(unknown)}")


class ReviewStoreTransaction(ABC):
    """One atomic unit of work. Rolled back if the ``with`` block raises."""

    @abstractmethod
    def get(self, review_id: int) -> NormalizedReview | None:
        """Read a review, including this transaction's own uncommitted writes."""
        ...

    @abstractmethod
    def conditional_update(self, review_id: int, required_current_approved: bool, new_fields: dict[str, Any]) -> int:
        """Apply ``new_fields`` where id matches and ``approved == required_current_approved``.

        When ``new_fields`` carries a response it is also merged into the
        stored ``raw_json``. Returns the affected row count (0 or 1).
        """
        ...

    @abstractmethod
    def append_audit(self, entry: AuditLogEntry) -> None:
        ...


class ReviewStore(ABC):
    @abstractmethod
    def get(self, review_id: int) -> NormalizedReview | None:
        ...

    @abstractmethod
    def add(self, reviews: Iterable[NormalizedReview]) -> int:
        """Ingest reviews, superseding earlier versions with the same id.

        A superseding version never overwrites the stored approval or
        response fields; those change only through approval transitions.
        Returns the number of reviews written.
        """
        ...

    @abstractmethod
    def query(
        self,
        filters: ReviewFilterOptions | None = None,
        sort_field: SortField = SortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[NormalizedReview], int]:
        """Return one page of matching reviews and the total match count."""
        ...

    @abstractmethod
    def stats(self, filters: ReviewFilterOptions | None = None, trends_since: str | None = None) -> ReviewStats:
        """Counts, average rating, rating and channel distributions for matching reviews.

        Monthly trends group matching reviews by the month of ``created_at``,
        newest first, limited to TREND_MONTHS months and to reviews created
        at or after ``trends_since`` (an ISO-8601 UTC string) when given.
        """
        ...

    @abstractmethod
    def audit_history(self, review_id: int) -> list[AuditLogEntry]:
        """Audit entries for one review, newest first."""
        ...

    @abstractmethod
    def transaction(self) -> AbstractContextManager[ReviewStoreTransaction]:
        ...

