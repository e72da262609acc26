"""Field-level cleaning rules applied during normalization.

- Text sanitation (a character denylist, not HTML sanitization)
- Review type / channel mapping onto the fixed enums
- Category flattening and 0–10 rescaling
- Half-up rounding to one decimal
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from reviews.review.review import (
    ANONYMOUS_GUEST,
    MAX_RATING,
    MIN_RATING,
    ReviewChannel,
    ReviewType,
)

GUEST_NAME_MAX_LENGTH = 255
COMMENT_MAX_LENGTH = 5000

_DENYLIST = re.compile(r"[<>\"'&]")
_WHITESPACE = re.compile(r"\s+")
_INLINE_WHITESPACE = re.compile(r"[^\S\n]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_REVIEW_TYPES = {
    "guest_review": ReviewType.GUEST_REVIEW,
    "guest": ReviewType.GUEST_REVIEW,
    "host_review": ReviewType.HOST_REVIEW,
    "host": ReviewType.HOST_REVIEW,
    "auto_review": ReviewType.AUTO_REVIEW,
    "automatic": ReviewType.AUTO_REVIEW,
    "auto": ReviewType.AUTO_REVIEW,
    "system_review": ReviewType.SYSTEM_REVIEW,
    "system": ReviewType.SYSTEM_REVIEW,
}

_CHANNELS = {
    "bookingcom": ReviewChannel.BOOKING_COM,
    "booking.com": ReviewChannel.BOOKING_COM,
    "booking": ReviewChannel.BOOKING_COM,
    "airbnb": ReviewChannel.AIRBNB,
    "google": ReviewChannel.GOOGLE,
    "googlemaps": ReviewChannel.GOOGLE,
    "googlereviews": ReviewChannel.GOOGLE,
    "direct": ReviewChannel.DIRECT,
    "directbooking": ReviewChannel.DIRECT,
    "vrbo": ReviewChannel.VRBO,
}


def round_one(value: float) -> float:
    """Round half-up to one decimal place (8.25 -> 8.3)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def as_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None when it is not numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int | float):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------
def sanitize_guest_name(name: Any) -> str:
    if not isinstance(name, str):
        return ANONYMOUS_GUEST
    cleaned = _WHITESPACE.sub(" ", _DENYLIST.sub("", name)).strip()
    return cleaned[:GUEST_NAME_MAX_LENGTH].strip() or ANONYMOUS_GUEST


def sanitize_comment(comment: Any) -> str:
    if not isinstance(comment, str):
        return ""
    text = comment.replace("\r\n", "\n").replace("\r", "\n")
    text = _DENYLIST.sub("", text)
    text = _INLINE_WHITESPACE.sub(" ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()[:COMMENT_MAX_LENGTH].strip()


def normalize_language(language: Any) -> str | None:
    if not isinstance(language, str) or not language.strip():
        return None
    return language.strip().lower()[:2]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
def map_review_type(raw_type: Any) -> tuple[ReviewType, str | None]:
    """Map a free-text review type. Returns the enum and an optional warning."""
    token = re.sub(r"[^a-z]", "_", raw_type.lower()) if isinstance(raw_type, str) else ""
    mapped = _REVIEW_TYPES.get(token)
    if mapped is None:
        return ReviewType.GUEST_REVIEW, f"Unknown review type {raw_type!r}, defaulting to guest_review"
    return mapped, None


def map_channel(raw_channel: Any) -> tuple[ReviewChannel, str | None]:
    """Map a free-text channel. Returns the enum and an optional warning."""
    token = re.sub(r"[^a-z.]", "", raw_channel.lower()) if isinstance(raw_channel, str) else ""
    mapped = _CHANNELS.get(token)
    if mapped is None:
        return ReviewChannel.OTHER, f"Unknown channel {raw_channel!r}, defaulting to other"
    return mapped, None


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
def category_key(name: str) -> str:
    """``"Check-in Experience"`` -> ``"check_in_experience"``."""
    return _NON_ALNUM.sub("_", name.lower()).strip("_")


def rescale_category(category: Mapping[str, Any]) -> tuple[str, float]:
    """Validate one raw category and return its key and unrounded 0–10 rating.

    Raises ``ValueError`` describing why the category is unusable.
    """
    name = category.get("name")
    if name is None:
        name = category.get("category")
    key = category_key(name) if isinstance(name, str) else ""
    if not key:
        raise ValueError("category has no usable name")

    rating = as_number(category.get("rating"))
    if rating is None:
        raise ValueError(f"category {key} has no numeric rating")

    max_rating = as_number(category.get("max_rating", category.get("maxRating", MAX_RATING)))
    if max_rating is None or max_rating <= 0:
        raise ValueError(f"category {key} has invalid max rating")

    scaled = (rating / max_rating) * MAX_RATING
    if not MIN_RATING <= scaled <= MAX_RATING:
        raise ValueError(f"category {key} rating {rating} is outside 0..{max_rating:g}")
    return key, scaled


def flatten_categories(categories: Iterable[Any]) -> tuple[dict[str, float], list[float], list[str]]:
    """Flatten raw categories into ``{key: rating}``.

    Returns the rounded map, the unrounded rescaled values (for averaging)
    and one warning per rejected category.
    """
    flattened: dict[str, float] = {}
    scaled_values: list[float] = []
    warnings: list[str] = []

    for category in categories:
        if not isinstance(category, Mapping):
            warnings.append("Ignored malformed category entry")
            continue
        try:
            key, scaled = rescale_category(category)
        except ValueError as exc:
            warnings.append(f"Ignored invalid category: {exc}")
            continue
        flattened[key] = round_one(scaled)
        scaled_values.append(scaled)

    return flattened, scaled_values, warnings
