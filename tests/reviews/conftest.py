import pytest
from reviews.config import ReviewsSettings
from reviews.domain import build_domain
from reviews.projections.review_listing import ReviewListingService
from reviews.review.approval import ApprovalStateMachine
from reviews.review.normalization import NormalizationOptions, normalize_reviews
from reviews.sources import sample_reviews
from reviews.store import InMemoryReviewStore


@pytest.fixture()
def normalized_samples():
    """The bundled sample records, normalized with the upstream default rating."""
    return normalize_reviews(sample_reviews(), NormalizationOptions(default_rating=5.0)).items


@pytest.fixture()
def review_store():
    return InMemoryReviewStore()


@pytest.fixture()
def seeded_store(review_store, normalized_samples):
    review_store.add(normalized_samples)
    return review_store


@pytest.fixture()
def approvals(seeded_store, cache):
    return ApprovalStateMachine(seeded_store, cache)


@pytest.fixture()
def listings(seeded_store, cache):
    return ReviewListingService(seeded_store, cache, fallback=sample_reviews)


@pytest.fixture()
def settings(tmp_path):
    return ReviewsSettings(
        REVIEWS_ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'reviews.db'}",
        CACHE_BACKEND="memory",
    )


@pytest.fixture()
def domain(settings, kv_store):
    return build_domain(settings=settings, kv_store=kv_store, configure_logs=False)
