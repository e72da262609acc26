from pathlib import Path

import pytest


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically reset process-wide registries after every test"""
    yield

    from reviews.domain import reset_domain
    from reviews.store import reset_review_store
    from shared.cache import reset_kv_store

    reset_domain()
    reset_review_store()
    reset_kv_store()


# ---------------------------------------------------------------------------
# Cache fixtures shared by the reviews and shared test trees
# ---------------------------------------------------------------------------
class FrozenClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        from datetime import timedelta

        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    from datetime import UTC, datetime

    return FrozenClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC))


@pytest.fixture()
def kv_store():
    from shared.cache import InMemoryKeyValueStore

    return InMemoryKeyValueStore()


@pytest.fixture()
def cache(kv_store, clock):
    import random

    from shared.cache import CacheConfig, CacheMetrics, ResponseCache

    return ResponseCache(kv_store, CacheConfig(ttl=300), CacheMetrics(), clock=clock, rng=random.Random(7))
