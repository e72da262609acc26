"""Approval state machine — idempotent, concurrency-safe approval transitions.

A transition runs in two explicit phases:

1. ``transition()``: one store transaction holding the conditional update
   ``approved := target WHERE id = X AND approved != target`` and the audit
   append. Zero affected rows means another request already won (or the
   review was already in the target state) and surfaces as
   ``NoChangeRequired``; nothing is written.
2. ``invalidate()``: after commit, drop the listing's cached responses and
   every list-level cached query. Never raises; a failure here is logged
   and never reported as a failed approval.

For N simultaneous identical requests exactly one commits and writes one
audit entry; the other N-1 observe zero affected rows.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog

from reviews.errors import NoChangeRequired, NotFound, ReviewsError
from reviews.review.review import (
    ActorContext,
    ApprovalState,
    AuditAction,
    AuditLogEntry,
    NormalizedReview,
    utc_now,
)
from reviews.store.port import ReviewStore
from shared.cache import ResponseCache

logger = structlog.get_logger(__name__)

BULK_CHUNK_SIZE = 10


@dataclass(frozen=True)
class ApprovalOutcome:
    review: NormalizedReview
    audit: AuditLogEntry
    previous_approved: bool

    @property
    def listing_id(self) -> int:
        return self.review.listing_id


@dataclass
class BulkApprovalResult:
    updated: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    reviews: list[NormalizedReview] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        return "success" if self.success else "partial"


class ApprovalStateMachine:
    def __init__(self, store: ReviewStore, cache: ResponseCache | None = None) -> None:
        self.store = store
        self.cache = cache

    # ------------------------------------------------------------------
    # Phase 1: committed transition
    # ------------------------------------------------------------------
    def transition(
        self,
        review_id: int,
        approved: bool,
        response: str | None = None,
        actor: ActorContext | None = None,
    ) -> ApprovalOutcome:
        actor = actor or ActorContext()

        with self.store.transaction() as tx:
            current = tx.get(review_id)
            if current is None:
                raise NotFound(review_id)

            now = utc_now()
            new_fields: dict[str, Any] = {"approved": approved, "updated_at": now}
            if response is not None:
                new_fields["response"] = response
                new_fields["response_date"] = now

            if tx.conditional_update(review_id, not approved, new_fields) != 1:
                raise NoChangeRequired(review_id, approved)

            # The precondition fixes the prior state even if ``current`` was read stale
            previous = ApprovalState.of(not approved)

            updated = tx.get(review_id)
            entry = AuditLogEntry(
                review_id=review_id,
                action=AuditAction.APPROVED if approved else AuditAction.UNAPPROVED,
                previous_value={"approved": not approved, "response": current.response},
                new_value={"approved": approved, "response": updated.response},
                actor=actor,
                timestamp=now,
            )
            tx.append_audit(entry)

        logger.info(
            "Review approval status updated",
            review_id=review_id,
            approved=approved,
            previous_state=previous.value,
            has_response=response is not None,
            user_id=actor.user_id,
            listing_id=updated.listing_id,
        )
        return ApprovalOutcome(review=updated, audit=entry, previous_approved=not approved)

    # ------------------------------------------------------------------
    # Phase 2: post-commit invalidation
    # ------------------------------------------------------------------
    def invalidate(self, outcome: ApprovalOutcome) -> int:
        return self._invalidate_listings([outcome.listing_id])

    def _invalidate_listings(self, listing_ids: Iterable[int]) -> int:
        if self.cache is None:
            return 0
        deleted = 0
        try:
            for listing_id in sorted(set(listing_ids)):
                deleted += self.cache.invalidate_listing(listing_id)
            deleted += self.cache.invalidate_review_lists()
        except Exception:
            logger.exception("Cache invalidation failed after review approval")
        return deleted

    # ------------------------------------------------------------------
    # Both phases
    # ------------------------------------------------------------------
    def set_approval(
        self,
        review_id: int,
        approved: bool,
        response: str | None = None,
        actor: ActorContext | None = None,
    ) -> ApprovalOutcome:
        outcome = self.transition(review_id, approved, response, actor)
        self.invalidate(outcome)
        return outcome

    def approve(self, review_id: int, response: str | None = None, actor: ActorContext | None = None) -> ApprovalOutcome:
        return self.set_approval(review_id, True, response, actor)

    def unapprove(self, review_id: int, response: str | None = None, actor: ActorContext | None = None) -> ApprovalOutcome:
        return self.set_approval(review_id, False, response, actor)

    def bulk_transition(
        self,
        review_ids: Iterable[int],
        approved: bool,
        response: str | None = None,
        actor: ActorContext | None = None,
    ) -> BulkApprovalResult:
        """Apply one transition per id; failures are collected, never propagated."""
        review_ids = list(review_ids)
        result = BulkApprovalResult()
        touched_listings: list[int] = []

        for start in range(0, len(review_ids), BULK_CHUNK_SIZE):
            chunk = review_ids[start : start + BULK_CHUNK_SIZE]
            logger.debug("Processing bulk approval chunk", offset=start, size=len(chunk))
            for review_id in chunk:
                try:
                    outcome = self.transition(review_id, approved, response, actor)
                except ReviewsError as exc:
                    result.failed += 1
                    result.errors.append({"review_id": review_id, "error": exc.message, "code": exc.code})
                    continue
                result.updated += 1
                result.reviews.append(outcome.review)
                touched_listings.append(outcome.listing_id)

        if touched_listings:
            self._invalidate_listings(touched_listings)

        logger.info(
            "Bulk approval completed",
            approved=approved,
            updated=result.updated,
            failed=result.failed,
            status=result.status,
        )
        return result

    def history(self, review_id: int) -> list[AuditLogEntry]:
        if self.store.get(review_id) is None:
            raise NotFound(review_id)
        return self.store.audit_history(review_id)
