"""Tests for proposal ranking."""

import pytest

from schemas.material import Material
from schemas.proposal import ScoredProposal
from webapp.proposal.cache import InMemoryCandidateCache
from webapp.proposal.catalog import MaterialCatalog
from webapp.proposal.ranker import (
    FALLBACK_SCORE,
    INTERNAL_MATERIAL_FEATURE,
    ProposalRanker,
    claims_internal_material,
    fallback_candidates,
    profile_digest,
    reconcile_candidates,
)

from conftest import FakeLLM, ranking_payload


def _internal_reasons(candidate):
    return [r for r in candidate.scoring_reasons if claims_internal_material(r)]


@pytest.fixture
def cache():
    return InMemoryCandidateCache()


class TestRank:

    def test_three_ordered_candidates(self, sample_profile, sample_materials, cache):
        llm = FakeLLM(ranking_payload())
        candidates = ProposalRanker(llm, cache).rank(sample_profile, MaterialCatalog(sample_materials))

        assert [c.id for c in candidates] == ["p-1", "p-2", "p-3"]
        assert [c.rank for c in candidates] == [1, 2, 3]
        assert all(0 <= c.score <= 100 for c in candidates)
        assert llm.calls[0]["temperature"] == 0.5

    def test_every_candidate_is_cached(self, sample_profile, cache):
        candidates = ProposalRanker(FakeLLM(ranking_payload()), cache).rank(sample_profile)
        for candidate in candidates:
            context = cache.get(candidate.id)
            assert context.candidate == candidate
            assert context.profile == sample_profile

    def test_catalog_in_prompt(self, sample_profile, sample_materials, cache):
        llm = FakeLLM(ranking_payload())
        ProposalRanker(llm, cache).rank(sample_profile, MaterialCatalog(sample_materials))
        assert "ビオセラミド" in llm.calls[0]["prompt"]
        assert "mat-1" not in llm.calls[0]["prompt"]

    def test_research_in_prompt(self, sample_profile, sample_research, cache):
        llm = FakeLLM(ranking_payload())
        ProposalRanker(llm, cache).rank(sample_profile.with_research(sample_research))
        assert "株式会社サンプルコスメ" in llm.calls[0]["prompt"]

    def test_no_catalog_strips_internal_material_claims(self, sample_profile, cache):
        candidates = ProposalRanker(FakeLLM(ranking_payload()), cache).rank(sample_profile, MaterialCatalog())
        assert all(not _internal_reasons(c) for c in candidates)
        assert candidates[0].scoring_reasons[0].feature == "保湿訴求"

    def test_catalog_use_adds_reason(self, sample_profile, sample_materials, cache):
        llm = FakeLLM(ranking_payload(with_internal_reason=False))
        candidates = ProposalRanker(llm, cache).rank(sample_profile, MaterialCatalog(sample_materials))

        reasons = _internal_reasons(candidates[0])
        assert len(reasons) == 1
        assert reasons[0].feature == INTERNAL_MATERIAL_FEATURE
        assert "ヒアルロン酸Na" in reasons[0].reason
        assert not _internal_reasons(candidates[1])

    def test_preferred_catalog_material_credited_to_top_candidate(self, sample_profile, cache):
        profile = sample_profile.revise("hero_ingredients_preference", "ビオセラミド配合希望")
        catalog = MaterialCatalog([Material(id="mat-2", trade_name="ビオセラミド", inci_name="Ceramide NP")])
        llm = FakeLLM(ranking_payload(with_internal_reason=False))

        candidates = ProposalRanker(llm, cache).rank(profile, catalog)

        reasons = _internal_reasons(candidates[0])
        assert len(reasons) == 1
        assert "ビオセラミド" in reasons[0].reason

    def test_bare_array_answer(self, sample_profile, cache):
        llm = FakeLLM(ranking_payload()["proposals"])
        candidates = ProposalRanker(llm, cache).rank(sample_profile)
        assert [c.rank for c in candidates] == [1, 2, 3]


class TestFallback:

    def test_malformed_answers_fall_back(self, sample_profile, cache):
        llm = FakeLLM("申し訳ありません", "申し訳ありません")
        candidates = ProposalRanker(llm, cache).rank(sample_profile)

        assert len(candidates) == 1
        assert candidates[0].rank == 1
        assert candidates[0].score == FALLBACK_SCORE
        assert candidates[0].id.startswith("fallback-")
        assert "化粧水" in candidates[0].product_name_suggestion
        assert cache.get(candidates[0].id) is not None

    def test_empty_candidate_list_falls_back(self, sample_profile, cache):
        candidates = ProposalRanker(FakeLLM({"proposals": []}), cache).rank(sample_profile)
        assert candidates[0].id.startswith("fallback-")

    def test_fallback_is_deterministic(self, sample_profile):
        assert fallback_candidates(sample_profile) == fallback_candidates(sample_profile)
        other = sample_profile.revise("product_type", "美容液")
        assert profile_digest(other) != profile_digest(sample_profile)


class TestReconcileCandidates:

    def test_duplicate_and_missing_ids_replaced(self, sample_profile):
        candidates = [
            ScoredProposal(id="same", rank=1, score=90),
            ScoredProposal(id="same", rank=2, score=80),
            ScoredProposal(id="", rank=3, score=70),
        ]
        result = reconcile_candidates(candidates, sample_profile, MaterialCatalog())
        ids = [c.id for c in result]
        assert ids[0] == "same"
        assert len(set(ids)) == 3
        assert all(i for i in ids)

    def test_at_most_three_candidates(self, sample_profile):
        candidates = [ScoredProposal(id=f"p-{i}", rank=i, score=90 - i) for i in range(1, 6)]
        result = reconcile_candidates(candidates, sample_profile, MaterialCatalog())
        assert [c.id for c in result] == ["p-1", "p-2", "p-3"]

    def test_tied_ranks_ordered_by_score(self, sample_profile):
        candidates = [
            ScoredProposal(id="low", rank=1, score=60),
            ScoredProposal(id="high", rank=1, score=95),
        ]
        result = reconcile_candidates(candidates, sample_profile, MaterialCatalog())
        assert [(c.id, c.rank) for c in result] == [("high", 1), ("low", 2)]

    def test_input_not_modified(self, sample_profile):
        original = ScoredProposal(id="p-1", rank=3, score=50)
        reconcile_candidates([original], sample_profile, MaterialCatalog())
        assert original.rank == 3
