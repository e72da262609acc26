"""Tests for the review model, approval states and audit entries."""

import pytest
from pydantic import ValidationError
from reviews.review.review import (
    ActorContext,
    ApprovalState,
    AuditAction,
    AuditLogEntry,
    NormalizedReview,
    ReviewChannel,
    ReviewType,
    can_transition,
    format_utc,
)


def _make_review(**overrides):
    defaults = {
        "id": 1,
        "listing_id": 10,
        "guest_name": "Jane Doe",
        "rating": 9.0,
        "created_at": "2024-01-15T14:30:00.000Z",
        "updated_at": "2024-01-15T14:30:00.000Z",
        "review_type": ReviewType.GUEST_REVIEW,
        "channel": ReviewChannel.AIRBNB,
    }
    defaults.update(overrides)
    return NormalizedReview(**defaults)


# ---------------------------------------------------------------
# Approval states
# ---------------------------------------------------------------
class TestApprovalStates:
    def test_pending_to_approved(self):
        assert can_transition(ApprovalState.PENDING, ApprovalState.APPROVED)

    def test_approved_to_pending(self):
        assert can_transition(ApprovalState.APPROVED, ApprovalState.PENDING)

    @pytest.mark.parametrize("state", list(ApprovalState))
    def test_self_transition_is_not_a_transition(self, state):
        assert not can_transition(state, state)

    def test_state_of_flag(self):
        assert ApprovalState.of(True) is ApprovalState.APPROVED
        assert ApprovalState.of(False) is ApprovalState.PENDING
        assert _make_review(approved=True).approval_state is ApprovalState.APPROVED


# ---------------------------------------------------------------
# NormalizedReview
# ---------------------------------------------------------------
class TestNormalizedReview:
    def test_defaults(self):
        review = _make_review()
        assert review.approved is False
        assert review.comment == ""
        assert review.categories == {}
        assert review.has_response is False

    def test_rating_bounds(self):
        with pytest.raises(ValidationError):
            _make_review(rating=10.5)
        with pytest.raises(ValidationError):
            _make_review(rating=-1)

    def test_category_bounds(self):
        with pytest.raises(ValidationError):
            _make_review(categories={"cleanliness": 11.0})

    def test_dates_must_be_utc_millis(self):
        with pytest.raises(ValidationError):
            _make_review(created_at="2024-01-15T14:30:00Z")

    def test_empty_guest_name_rejected(self):
        with pytest.raises(ValidationError):
            _make_review(guest_name="")

    def test_json_dict_is_camel_case(self):
        data = _make_review(response="Thanks!").to_json_dict()
        assert data["listingId"] == 10
        assert data["guestName"] == "Jane Doe"
        assert data["reviewType"] == "guest_review"
        assert data["channel"] == "airbnb"
        assert data["response"] == "Thanks!"
        assert "checkInDate" not in data

    def test_round_trips_through_camel_case(self):
        review = _make_review(categories={"cleanliness": 9.5})
        assert NormalizedReview.model_validate(review.to_json_dict()) == review


# ---------------------------------------------------------------
# Audit entries
# ---------------------------------------------------------------
class TestAuditLogEntry:
    def test_defaults(self):
        entry = AuditLogEntry(review_id=1, action=AuditAction.APPROVED)
        assert len(entry.id) == 32
        assert entry.metadata == {"source": "approval_state_machine"}
        assert entry.actor == ActorContext()
        assert entry.timestamp.endswith("Z")

    def test_ids_are_unique(self):
        first = AuditLogEntry(review_id=1, action=AuditAction.APPROVED)
        second = AuditLogEntry(review_id=1, action=AuditAction.APPROVED)
        assert first.id != second.id

    def test_format_utc(self):
        from datetime import datetime, timedelta, timezone

        value = datetime(2024, 1, 15, 16, 30, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
        assert format_utc(value) == "2024-01-15T14:30:00.123Z"
