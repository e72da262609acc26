"""In-memory filter / sort / paginate helpers over normalized reviews.

These operate on an already-materialized collection. The SQL store applies
the same ``ReviewFilterOptions`` in its own query builder.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from reviews.errors import ValidationFailure
from reviews.review.review import NormalizedReview, ReviewChannel, ReviewType

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


class SortField(Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    RATING = "rating"
    GUEST_NAME = "guest_name"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class ReviewFilterOptions:
    listing_id: int | None = None
    date_from: str | None = None
    date_to: str | None = None
    channel: ReviewChannel | None = None
    approved: bool | None = None
    review_type: ReviewType | None = None
    min_rating: float | None = None
    max_rating: float | None = None
    has_response: bool | None = None
    guest_name: str | None = None
    search: str | None = None

    def __post_init__(self) -> None:
        if self.min_rating is not None and self.max_rating is not None and self.min_rating > self.max_rating:
            raise ValidationFailure({"min_rating": ["min_rating cannot exceed max_rating"]})

    def to_params(self) -> dict[str, Any]:
        """Defined filters only, camelCased, as echoed in list responses and cache keys."""
        params: dict[str, Any] = {}
        for name, value in asdict(self).items():
            if value is None:
                continue
            head, *rest = name.split("_")
            params[head + "".join(part.title() for part in rest)] = value.value if isinstance(value, Enum) else value
        return params


def _matches(review: NormalizedReview, options: ReviewFilterOptions) -> bool:
    if options.listing_id is not None and review.listing_id != options.listing_id:
        return False
    # ISO-8601 UTC strings with fixed width compare correctly as text
    if options.date_from is not None and review.created_at < options.date_from:
        return False
    if options.date_to is not None and review.created_at > options.date_to:
        return False
    if options.channel is not None and review.channel is not options.channel:
        return False
    if options.approved is not None and review.approved is not options.approved:
        return False
    if options.review_type is not None and review.review_type is not options.review_type:
        return False
    if options.min_rating is not None and review.rating < options.min_rating:
        return False
    if options.max_rating is not None and review.rating > options.max_rating:
        return False
    if options.has_response is not None and review.has_response is not options.has_response:
        return False
    if options.guest_name and options.guest_name.lower() not in review.guest_name.lower():
        return False
    if options.search:
        needle = options.search.lower()
        if needle not in review.guest_name.lower() and needle not in review.comment.lower():
            return False
    return True


def filter_reviews(reviews: Iterable[NormalizedReview], options: ReviewFilterOptions | None = None) -> list[NormalizedReview]:
    if options is None:
        return list(reviews)
    return [review for review in reviews if _matches(review, options)]


def _sort_value(review: NormalizedReview, field: SortField) -> Any:
    if field is SortField.GUEST_NAME:
        return review.guest_name.lower()
    return getattr(review, field.value)


def sort_reviews(
    reviews: Iterable[NormalizedReview],
    field: SortField = SortField.CREATED_AT,
    order: SortOrder = SortOrder.DESC,
) -> list[NormalizedReview]:
    """Stable sort; equal keys keep their input order in both directions."""
    return sorted(reviews, key=lambda review: _sort_value(review, field), reverse=order is SortOrder.DESC)


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


def validate_page(page: int, limit: int, max_limit: int = MAX_PAGE_LIMIT) -> None:
    messages: dict[str, list[str]] = {}
    if page < 1:
        messages["page"] = ["Page must be at least 1"]
    if not 1 <= limit <= max_limit:
        messages["limit"] = [f"Limit must be between 1 and {max_limit}"]
    if messages:
        raise ValidationFailure(messages)


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def paginate(
    items: Sequence[NormalizedReview],
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    max_limit: int = MAX_PAGE_LIMIT,
) -> tuple[list[NormalizedReview], Pagination]:
    validate_page(page, limit, max_limit)
    start = (page - 1) * limit
    return list(items[start : start + limit]), build_pagination(page, limit, len(items))
