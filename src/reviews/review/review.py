"""Review model — the canonical shape of the Reviews domain.

A ``NormalizedReview`` is produced once by the normalization engine and is
never deleted, only superseded by a later ingestion. After creation only the
approval flag and the response fields change, and only through the approval
state machine.

State Machine (2 states):
    PENDING  → APPROVED   (Approve)
    APPROVED → PENDING    (Unapprove)
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ANONYMOUS_GUEST = "Anonymous Guest"
MIN_RATING = 0.0
MAX_RATING = 10.0

ISO_UTC_MILLIS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def format_utc(value: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:mm:ss.sssZ`` in UTC."""
    value = value.astimezone(UTC)
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
        f".{value.microsecond // 1000:03d}Z"
    )


def utc_now() -> str:
    return format_utc(datetime.now(UTC))


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ReviewType(Enum):
    GUEST_REVIEW = "guest_review"
    HOST_REVIEW = "host_review"
    AUTO_REVIEW = "auto_review"
    SYSTEM_REVIEW = "system_review"


class ReviewChannel(Enum):
    BOOKING_COM = "booking.com"
    AIRBNB = "airbnb"
    GOOGLE = "google"
    DIRECT = "direct"
    VRBO = "vrbo"
    OTHER = "other"


class ApprovalState(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"

    @classmethod
    def of(cls, approved: bool) -> ApprovalState:
        return cls.APPROVED if approved else cls.PENDING


class AuditAction(Enum):
    APPROVED = "APPROVED"
    UNAPPROVED = "UNAPPROVED"
    UPDATED = "UPDATED"


# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    ApprovalState.PENDING: {ApprovalState.APPROVED},
    ApprovalState.APPROVED: {ApprovalState.PENDING},
}


def can_transition(current: ApprovalState, target: ApprovalState) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class NormalizedReview(CamelModel):
    """A validated, canonical review."""

    id: int
    listing_id: int
    guest_name: str = Field(min_length=1, max_length=255)
    comment: str = Field(default="", max_length=5000)
    rating: float = Field(ge=MIN_RATING, le=MAX_RATING)
    categories: dict[str, float] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    check_in_date: str | None = None
    check_out_date: str | None = None
    review_type: ReviewType
    channel: ReviewChannel
    approved: bool = False
    response: str | None = None
    response_date: str | None = None
    guest_id: int | str | None = None
    reservation_id: int | str | None = None
    language: str | None = None
    source: str | None = None
    # Verbatim upstream record; its shape varies per source.
    raw_json: dict[str, Any] = Field(default_factory=dict)

    @field_validator("categories")
    @classmethod
    def category_ratings_in_range(cls, value: dict[str, float]) -> dict[str, float]:
        for name, rating in value.items():
            if not MIN_RATING <= rating <= MAX_RATING:
                raise ValueError(f"Category {name} rating must be between 0 and 10")
        return value

    @field_validator("created_at", "updated_at", "check_in_date", "check_out_date", "response_date")
    @classmethod
    def dates_are_iso_utc_millis(cls, value: str | None) -> str | None:
        if value is not None and not ISO_UTC_MILLIS.match(value):
            raise ValueError("Date must be ISO-8601 UTC with millisecond precision")
        return value

    @property
    def approval_state(self) -> ApprovalState:
        return ApprovalState.of(self.approved)

    @property
    def has_response(self) -> bool:
        return bool(self.response)


class ActorContext(CamelModel):
    """Who triggered a transition."""

    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class AuditLogEntry(CamelModel):
    """Append-only record of one successful approval transition."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    review_id: int
    action: AuditAction
    previous_value: dict[str, Any] = Field(default_factory=dict)
    new_value: dict[str, Any] = Field(default_factory=dict)
    actor: ActorContext = Field(default_factory=ActorContext)
    timestamp: str = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=lambda: {"source": "approval_state_machine"})
