"""Normalization engine — heterogeneous raw review records to ``NormalizedReview``.

Pure and stateless: nothing here touches the store or the cache.

Rating resolution, in priority order:
    1. the direct ``rating``, rounded to one decimal
    2. the mean of the valid categories rescaled to 0–10, rounded to one decimal
    3. the caller-supplied default rating
    4. otherwise the record is rejected

Batch modes:
    strict      stop at the first failing record; overall failure, partial items kept
    permissive  skip failing records with a warning; fail only if nothing succeeded
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from reviews.errors import NormalizationFailure, ValidationFailure
from reviews.review.cleaning import (
    as_number,
    flatten_categories,
    map_channel,
    map_review_type,
    normalize_language,
    round_one,
    sanitize_comment,
    sanitize_guest_name,
)
from reviews.review.dates import normalize_date, resolve_timezone
from reviews.review.review import MAX_RATING, MIN_RATING, NormalizedReview

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NormalizationOptions:
    strict: bool = False
    default_rating: float | None = None
    timezone: str | None = None

    def __post_init__(self) -> None:
        if self.default_rating is not None and not MIN_RATING <= self.default_rating <= MAX_RATING:
            raise ValidationFailure({"default_rating": ["Default rating must be between 0 and 10"]})


@dataclass
class NormalizationResult:
    items: list[NormalizedReview] = field(default_factory=list)
    processed_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    success: bool = True
    failure: NormalizationFailure | None = None


def _record_id(raw: Any) -> Any:
    return raw.get("id") if isinstance(raw, Mapping) else None


def _required_int(raw: Mapping[str, Any], name: str) -> int | None:
    value = raw.get(name)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _resolve_rating(
    raw: Mapping[str, Any],
    scaled_categories: list[float],
    default_rating: float | None,
    warnings: list[str],
) -> float:
    direct = raw.get("rating")
    if direct is not None:
        rating = as_number(direct)
        if rating is None:
            raise ValidationFailure({"rating": [f"Rating {direct!r} is not numeric"]})
        rating = round_one(rating)
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationFailure({"rating": ["Rating must be between 0 and 10"]})
        return rating

    if scaled_categories:
        return round_one(sum(scaled_categories) / len(scaled_categories))

    if default_rating is not None:
        warnings.append(f"Using default rating {default_rating}")
        return default_rating

    raise ValidationFailure({"rating": ["Unable to determine rating from direct value or categories"]})


def _normalize(raw: Mapping[str, Any], options: NormalizationOptions, warnings: list[str]) -> NormalizedReview:
    if not isinstance(raw, Mapping):
        raise ValidationFailure("Raw review record must be an object")

    review_id = _required_int(raw, "id")
    listing_id = _required_int(raw, "listingId")
    if review_id is None or listing_id is None:
        raise ValidationFailure(
            {"id": ["Missing required fields: id or listingId"]},
            record_id=raw.get("id"),
        )

    zone = resolve_timezone(options.timezone)

    created_raw = raw.get("createdAt")
    if created_raw is None:
        raise ValidationFailure({"createdAt": ["createdAt is required"]}, record_id=review_id)
    created_at = normalize_date(created_raw, zone, "createdAt")
    updated_raw = raw.get("updatedAt")
    updated_at = normalize_date(updated_raw, zone, "updatedAt") if updated_raw else created_at

    optional_dates = {}
    for source_key, target in (
        ("checkInDate", "check_in_date"),
        ("checkOutDate", "check_out_date"),
        ("responseDate", "response_date"),
    ):
        if raw.get(source_key):
            optional_dates[target] = normalize_date(raw[source_key], zone, source_key)

    raw_categories = raw.get("reviewCategories") or []
    if not isinstance(raw_categories, list | tuple):
        warnings.append("Ignored reviewCategories: expected a list")
        raw_categories = []
    categories, scaled, category_warnings = flatten_categories(raw_categories)
    warnings.extend(category_warnings)

    rating = _resolve_rating(raw, scaled, options.default_rating, warnings)

    review_type, type_warning = map_review_type(raw.get("reviewType"))
    channel, channel_warning = map_channel(raw.get("channel"))
    warnings.extend(w for w in (type_warning, channel_warning) if w)

    response = sanitize_comment(raw.get("response")) or None

    try:
        return NormalizedReview(
            id=review_id,
            listing_id=listing_id,
            guest_name=sanitize_guest_name(raw.get("guestName")),
            comment=sanitize_comment(raw.get("comment")),
            rating=rating,
            categories=categories,
            created_at=created_at,
            updated_at=updated_at,
            review_type=review_type,
            channel=channel,
            approved=raw.get("approved") is True,
            response=response,
            guest_id=raw.get("guestId"),
            reservation_id=raw.get("reservationId"),
            language=normalize_language(raw.get("language")),
            source=raw.get("source") if isinstance(raw.get("source"), str) else None,
            raw_json=copy.deepcopy(dict(raw)),
            **optional_dates,
        )
    except PydanticValidationError as exc:
        messages: dict[str, list[str]] = {}
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or "_entity"
            messages.setdefault(location, []).append(error["msg"])
        raise ValidationFailure(messages, record_id=review_id) from exc


def normalize_review(raw: Mapping[str, Any], options: NormalizationOptions | None = None) -> NormalizedReview:
    """Normalize one raw record or raise ``ValidationFailure``."""
    options = options or NormalizationOptions()
    warnings: list[str] = []
    review = _normalize(raw, options, warnings)
    for warning in warnings:
        logger.warning("Normalization warning", review_id=review.id, warning=warning)
    return review


def normalize_reviews(
    raws: Iterable[Mapping[str, Any]],
    options: NormalizationOptions | None = None,
) -> NormalizationResult:
    """Normalize a batch of raw records according to ``options.strict``."""
    options = options or NormalizationOptions()
    result = NormalizationResult()
    attempted = 0

    for raw in raws:
        attempted += 1
        record_id = _record_id(raw)
        record_warnings: list[str] = []
        try:
            review = _normalize(raw, options, record_warnings)
        except ValidationFailure as exc:
            result.skipped_count += 1
            message = f"Failed to normalize review {record_id}: {exc.message}"
            if options.strict:
                result.errors.append(message)
                result.failure = NormalizationFailure(record_id, exc.message)
                result.success = False
                logger.error("Strict mode: stopping normalization due to error", review_id=record_id, error=exc.message)
                break
            result.warnings.append(f"Skipped review {record_id}: {exc.message}")
            logger.warning("Permissive mode: skipping review after normalization error", review_id=record_id, error=exc.message)
            continue

        result.items.append(review)
        result.processed_count += 1
        result.warnings.extend(f"Review {review.id}: {warning}" for warning in record_warnings)

    if not options.strict and attempted and result.processed_count == 0:
        result.success = False

    logger.info(
        "Review normalization completed",
        processed=result.processed_count,
        skipped=result.skipped_count,
        errors=len(result.errors),
        warnings=len(result.warnings),
        strict=options.strict,
    )
    return result
