"""Tests for the candidate cache backends."""

import pytest

from schemas.proposal import ScoredProposal
from webapp.proposal.cache import (
    InMemoryCandidateCache,
    RankingContext,
    SQLiteCandidateCache,
    build_cache,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def context(sample_profile):
    candidate = ScoredProposal(id="p-1", rank=1, score=90, product_name_suggestion="モイスト化粧水")
    return RankingContext(candidate=candidate, profile=sample_profile)


class TestInMemoryCandidateCache:

    def test_put_and_get(self, context):
        cache = InMemoryCandidateCache()
        cache.put("p-1", context)
        restored = cache.get("p-1")
        assert restored.candidate == context.candidate
        assert restored.profile == context.profile

    def test_miss_returns_none(self):
        assert InMemoryCandidateCache().get("unknown") is None

    def test_returned_context_is_a_copy(self, context):
        cache = InMemoryCandidateCache()
        cache.put("p-1", context)
        cache.get("p-1").candidate.score = 0
        assert cache.get("p-1").candidate.score == 90

    def test_ttl_expiry(self, context):
        clock = FakeClock()
        cache = InMemoryCandidateCache(ttl_seconds=60, clock=clock)
        cache.put("p-1", context)
        clock.now += 59
        assert cache.get("p-1") is not None
        clock.now += 2
        assert cache.get("p-1") is None
        assert len(cache) == 0

    def test_lru_eviction(self, context):
        cache = InMemoryCandidateCache(max_entries=2)
        cache.put("a", context)
        cache.put("b", context)
        cache.get("a")
        cache.put("c", context)
        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None

    def test_delete_and_clear(self, context):
        cache = InMemoryCandidateCache()
        cache.put("a", context)
        cache.put("b", context)
        cache.delete("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0


class TestSQLiteCandidateCache:

    def test_survives_new_instance(self, tmp_path, context):
        db = tmp_path / "cache.db"
        SQLiteCandidateCache(str(db)).put("p-1", context)
        restored = SQLiteCandidateCache(str(db)).get("p-1")
        assert restored.candidate == context.candidate
        assert restored.profile.product_type.value == "化粧水"

    def test_ttl_expiry(self, tmp_path, context):
        clock = FakeClock()
        cache = SQLiteCandidateCache(str(tmp_path / "cache.db"), ttl_seconds=60, clock=clock)
        cache.put("p-1", context)
        clock.now += 61
        assert cache.get("p-1") is None

    def test_overwrite_and_delete(self, tmp_path, context):
        cache = SQLiteCandidateCache(str(tmp_path / "cache.db"))
        cache.put("p-1", context)
        updated = RankingContext(
            candidate=context.candidate.model_copy(update={"score": 40}),
            profile=context.profile,
        )
        cache.put("p-1", updated)
        assert cache.get("p-1").candidate.score == 40
        cache.delete("p-1")
        assert cache.get("p-1") is None


class TestBuildCache:

    def test_backends(self, tmp_path):
        assert isinstance(build_cache("memory"), InMemoryCandidateCache)
        assert isinstance(build_cache("sqlite", str(tmp_path / "c.db")), SQLiteCandidateCache)
