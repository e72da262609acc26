"""Error taxonomy for the Reviews bounded context.

Every error carries a machine-readable ``code`` and a ``retryable`` flag so
the HTTP adapter (and any other caller) can tell caller-actionable outcomes
apart without string matching:

    ValidationFailure     malformed raw record or bad caller parameters
    NotFound              unknown review id
    NoChangeRequired      approval target state already holds (never retry)
    StoreError            persistent-store failure or timeout
    CacheError            key-value store failure (swallowed by the cache layer)
    NormalizationFailure  strict-mode batch abort
    UpstreamUnavailable   upstream source and its fallback both failed
"""

from __future__ import annotations

from typing import Any

from shared.cache.port import CacheError

__all__ = [
    "CacheError",
    "NoChangeRequired",
    "NormalizationFailure",
    "NotFound",
    "ReviewsError",
    "StoreError",
    "UpstreamUnavailable",
    "ValidationFailure",
]


class ReviewsError(Exception):
    """Base class for all Reviews errors."""

    code = "REVIEWS_ERROR"
    retryable = False

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": "error", "message": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationFailure(ReviewsError):
    """Input failed validation.

    ``messages`` follows the ``{field: [message, ...]}`` shape so several
    problems with one record can be reported together.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, messages: dict[str, list[str]] | str, record_id: Any = None) -> None:
        if isinstance(messages, str):
            messages = {"_entity": [messages]}
        self.messages = messages
        self.record_id = record_id
        flat = "; ".join(f"{field}: {', '.join(errs)}" for field, errs in messages.items())
        super().__init__(flat, details=messages)


class NotFound(ReviewsError):
    code = "NOT_FOUND"

    def __init__(self, review_id: str) -> None:
        self.review_id = review_id
        super().__init__(f"Review {review_id} not found")


class NoChangeRequired(ReviewsError):
    """The review is already in the requested approval state."""

    code = "ALREADY_IN_STATE"
    retryable = False

    def __init__(self, review_id: str, approved: bool) -> None:
        self.review_id = review_id
        self.approved = approved
        state = "approved" if approved else "unapproved"
        super().__init__(f"Already in requested state: review {review_id} is already {state}")


class StoreError(ReviewsError):
    code = "STORE_ERROR"
    retryable = True


class NormalizationFailure(ReviewsError):
    """A batch failed: strict mode hit a bad record, or nothing normalized at all."""

    code = "NORMALIZATION_ERROR"

    def __init__(self, record_id: Any, reason: str) -> None:
        self.record_id = record_id
        self.reason = reason
        subject = "reviews" if record_id is None else f"review {record_id}"
        super().__init__(f"Failed to normalize {subject}: {reason}")


class UpstreamUnavailable(ReviewsError):
    code = "UPSTREAM_UNAVAILABLE"
    retryable = True
