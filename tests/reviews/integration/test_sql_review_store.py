"""Integration tests for the SQLAlchemy review store against SQLite."""

import pytest
from reviews.errors import NoChangeRequired
from reviews.review.approval import ApprovalStateMachine
from reviews.review.querying import ReviewFilterOptions, SortField, SortOrder
from reviews.review.review import ReviewChannel
from reviews.store import SqlReviewStore


@pytest.fixture(params=["file", "memory"])
def sql_store(request, tmp_path, normalized_samples):
    url = f"sqlite:///{tmp_path / 'store' / 'reviews.db'}" if request.param == "file" else "sqlite://"
    store = SqlReviewStore.from_url(url)
    store.add(normalized_samples)
    yield store
    store.drop_tables()
    store.engine.dispose()


def _ids(reviews):
    return [review.id for review in reviews]


class TestPersistence:
    def test_round_trip(self, sql_store, normalized_samples):
        for review in normalized_samples:
            assert sql_store.get(review.id) == review

    def test_missing_review(self, sql_store):
        assert sql_store.get(9999) is None

    def test_superseding_keeps_approval_fields(self, sql_store, normalized_samples):
        original = normalized_samples[1]
        sql_store.add([original.model_copy(update={"comment": "Edited", "approved": False, "response": None})])
        stored = sql_store.get(original.id)
        assert stored.comment == "Edited"
        assert stored.approved is True

    def test_repeated_id_in_one_batch_supersedes(self, sql_store, normalized_samples):
        first = normalized_samples[1].model_copy(update={"id": 1, "comment": "First"})
        resent = first.model_copy(update={"comment": "Resent", "approved": False})

        assert sql_store.add([first, resent]) == 2

        stored = sql_store.get(1)
        assert stored.comment == "Resent"
        assert stored.approved is True
        reviews, total = sql_store.query()
        assert total == 6
        assert _ids(reviews).count(1) == 1

    def test_repeated_id_matches_in_memory_store(self, sql_store, normalized_samples):
        from reviews.store import InMemoryReviewStore

        first = normalized_samples[0].model_copy(update={"id": 2, "comment": "First"})
        resent = first.model_copy(update={"comment": "Resent"})
        memory_store = InMemoryReviewStore()

        assert sql_store.add([first, resent]) == memory_store.add([first, resent])
        assert sql_store.get(2) == memory_store.get(2)

    def test_empty_add(self, sql_store):
        assert sql_store.add([]) == 0


class TestQuery:
    def test_default_order(self, sql_store):
        reviews, total = sql_store.query()
        assert _ids(reviews) == [7457, 7456, 7455, 7454, 7453]
        assert total == 5

    def test_filters_match_in_memory_semantics(self, sql_store):
        reviews, total = sql_store.query(ReviewFilterOptions(min_rating=8.0), SortField.RATING, SortOrder.DESC)
        assert _ids(reviews) == [7453, 7454, 7456]
        assert total == 3

    @pytest.mark.parametrize(
        "options, expected",
        [
            (ReviewFilterOptions(listing_id=102), [7456, 7455]),
            (ReviewFilterOptions(channel=ReviewChannel.GOOGLE), [7455]),
            (ReviewFilterOptions(has_response=True), [7456]),
            (ReviewFilterOptions(has_response=False, listing_id=101), [7454, 7453]),
            (ReviewFilterOptions(search="SPOTLESS"), [7454]),
            (ReviewFilterOptions(guest_name="tom"), [7456]),
            (ReviewFilterOptions(date_from="2024-03-01T00:00:00.000Z"), [7457, 7456]),
        ],
    )
    def test_filters(self, sql_store, options, expected):
        reviews, _ = sql_store.query(options)
        assert _ids(reviews) == expected

    def test_pagination(self, sql_store):
        reviews, total = sql_store.query(page=2, limit=2)
        assert _ids(reviews) == [7455, 7454]
        assert total == 5

    def test_guest_name_sort_is_case_insensitive(self, sql_store):
        reviews, _ = sql_store.query(sort_field=SortField.GUEST_NAME, sort_order=SortOrder.ASC)
        assert _ids(reviews) == [7457, 7455, 7454, 7453, 7456]

    def test_stats(self, sql_store):
        stats = sql_store.stats()
        assert stats.total == 5
        assert stats.approved == 1
        assert stats.pending == 4
        assert stats.average_rating == pytest.approx(7.68)

    def test_stats_distributions(self, sql_store):
        stats = sql_store.stats()
        assert stats.rating_distribution == {"5": 1, "6": 1, "8": 1, "9.4": 1, "10": 1}
        assert stats.channel_distribution == {"airbnb": 1, "booking.com": 1, "direct": 1, "google": 1, "vrbo": 1}

    def test_stats_monthly_trends(self, sql_store):
        months = [trend.month for trend in sql_store.stats().monthly_trends]
        assert months == ["2024-04", "2024-03", "2024-02", "2024-01", "2020-08"]

        recent = sql_store.stats(trends_since="2024-02-01T00:00:00.000Z").monthly_trends
        assert [(trend.month, trend.count, trend.average_rating) for trend in recent] == [
            ("2024-04", 1, 5.0),
            ("2024-03", 1, 8.0),
            ("2024-02", 1, 6.0),
        ]

    def test_stats_match_in_memory_store(self, sql_store, normalized_samples):
        from reviews.store import InMemoryReviewStore

        memory_store = InMemoryReviewStore()
        memory_store.add(normalized_samples)
        filters = ReviewFilterOptions(listing_id=102)
        assert sql_store.stats(filters) == memory_store.stats(filters)

    def test_stats_of_empty_selection(self, sql_store):
        stats = sql_store.stats(ReviewFilterOptions(listing_id=404))
        assert stats.total == 0
        assert stats.average_rating == 0.0


class TestTransitions:
    def test_conditional_update_is_compare_and_set(self, sql_store):
        with sql_store.transaction() as tx:
            assert tx.conditional_update(7453, False, {"approved": True}) == 1
        with sql_store.transaction() as tx:
            assert tx.conditional_update(7453, False, {"approved": True}) == 0

    def test_immutable_fields_refused(self, sql_store):
        with pytest.raises(ValueError):
            with sql_store.transaction() as tx:
                tx.conditional_update(7453, False, {"rating": 1.0})

    def test_approval_with_audit(self, sql_store):
        machine = ApprovalStateMachine(sql_store)
        outcome = machine.approve(7453, response="Thanks for the stay")

        stored = sql_store.get(7453)
        assert stored.approved is True
        assert stored.raw_json["response"] == "Thanks for the stay"
        assert stored.raw_json["guestName"] == "Shane Finkelstein"

        history = sql_store.audit_history(7453)
        assert [entry.id for entry in history] == [outcome.audit.id]
        assert history[0].metadata == {"source": "approval_state_machine"}

        with pytest.raises(NoChangeRequired):
            machine.approve(7453)
        assert len(sql_store.audit_history(7453)) == 1

    def test_history_newest_first(self, sql_store):
        machine = ApprovalStateMachine(sql_store)
        first = machine.approve(7453)
        second = machine.unapprove(7453)
        assert [entry.id for entry in sql_store.audit_history(7453)] == [second.audit.id, first.audit.id]
