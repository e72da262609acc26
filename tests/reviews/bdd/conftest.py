"""Shared BDD fixtures and step definitions for review approval."""

import pytest
from pytest_bdd import given, parsers, then


@pytest.fixture()
def error():
    """Container for captured domain errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the sample reviews are stored")
def sample_reviews_stored(seeded_store):
    assert seeded_store.stats().total == 5


@given(parsers.cfparse("review {review_id:d} has been approved"))
def review_already_approved(approvals, review_id):
    approvals.approve(review_id)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("review {review_id:d} is approved in the store"))
def review_is_approved(seeded_store, review_id):
    assert seeded_store.get(review_id).approved is True


@then(parsers.cfparse("review {review_id:d} is pending in the store"))
def review_is_pending(seeded_store, review_id):
    assert seeded_store.get(review_id).approved is False


@then(parsers.cfparse('review {review_id:d} has response "{response}"'))
def review_has_response(seeded_store, review_id, response):
    assert seeded_store.get(review_id).response == response


@then(parsers.cfparse("review {review_id:d} has {count:d} audit entry"))
@then(parsers.cfparse("review {review_id:d} has {count:d} audit entries"))
def review_audit_count(seeded_store, review_id, count):
    assert len(seeded_store.audit_history(review_id)) == count


@then(parsers.cfparse('the transition is rejected with code "{code}"'))
def transition_rejected(error, code):
    assert error["exc"] is not None
    assert error["exc"].code == code


@then(parsers.cfparse("{updated:d} review is updated and {failed:d} fail"))
def bulk_counts(bulk_result, updated, failed):
    assert bulk_result.updated == updated
    assert bulk_result.failed == failed


@then(parsers.cfparse('the bulk status is "{status}"'))
def bulk_status(bulk_result, status):
    assert bulk_result.status == status
