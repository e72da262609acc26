"""Tests for bulk approval — partial success, chunking and one-shot invalidation."""

from reviews.review.approval import BULK_CHUNK_SIZE, ApprovalStateMachine


class TestBulkApproval:
    def test_all_succeed(self, approvals, seeded_store):
        result = approvals.bulk_transition([7453, 7455, 7456], approved=True)
        assert result.success is True
        assert result.status == "success"
        assert result.updated == 3
        assert result.failed == 0
        assert [review.id for review in result.reviews] == [7453, 7455, 7456]
        assert all(seeded_store.get(review_id).approved for review_id in (7453, 7455, 7456))

    def test_partial_failure_is_collected(self, approvals, seeded_store):
        result = approvals.bulk_transition([7453, 7454, 9999, 7455], approved=True)
        assert result.success is False
        assert result.status == "partial"
        assert result.updated == 2
        assert result.failed == 2
        assert [error["review_id"] for error in result.errors] == [7454, 9999]
        assert [error["code"] for error in result.errors] == ["ALREADY_IN_STATE", "NOT_FOUND"]
        assert seeded_store.get(7455).approved is True

    def test_response_applied_to_each(self, approvals):
        result = approvals.bulk_transition([7453, 7455], approved=True, response="Thanks!")
        assert {review.response for review in result.reviews} == {"Thanks!"}

    def test_every_id_processed_across_chunks(self, review_store, normalized_samples, cache):
        template = normalized_samples[0]
        count = BULK_CHUNK_SIZE * 2 + 5
        review_store.add(template.model_copy(update={"id": 1000 + n, "listing_id": 1 + n % 3}) for n in range(count))
        machine = ApprovalStateMachine(review_store, cache)

        result = machine.bulk_transition([1000 + n for n in range(count)], approved=True)
        assert result.updated == count
        assert len(review_store.query(limit=100)[0]) == count

    def test_each_listing_invalidated_once(self, approvals, kv_store):
        approvals.bulk_transition([7453, 7455, 7456], approved=True)
        patterns = [pattern for pattern, _ in kv_store.scan_calls]
        # listings 101 and 102, two patterns each, then the list caches
        assert patterns == [
            "reviews:*listingId=101",
            "reviews:*listingId=101&*",
            "reviews:*listingId=102",
            "reviews:*listingId=102&*",
            "reviews:reviews*",
        ]

    def test_nothing_invalidated_when_all_fail(self, approvals, kv_store):
        result = approvals.bulk_transition([7454], approved=True)
        assert result.failed == 1
        assert kv_store.scan_calls == []
