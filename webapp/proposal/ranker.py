"""Proposal ranking: three scored candidate concepts for a requirement profile."""

import hashlib
import json
import logging
import uuid
from typing import Optional

import orjson

from schemas.proposal import RankingResponse, ScoredProposal, ScoringReason
from schemas.requirement import RequirementProfile
from webapp.proposal.cache import CandidateCache, RankingContext
from webapp.proposal.catalog import MaterialCatalog
from webapp.proposal.errors import ProposalPipelineError, RankingFailure
from webapp.proposal.llm import LLMClient
from webapp.proposal.prompts import (
    OEM_PLANNER_SYSTEM,
    RANKING_MATERIAL_CONTEXT,
    RANKING_NO_MATERIAL_CONTEXT,
    RANKING_RESEARCH_CONTEXT,
    RANKING_USER,
)

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 3
INTERNAL_MATERIAL_FEATURE = "自社原料活用"
INTERNAL_MATERIAL_BONUS = 5.0
FALLBACK_SCORE = 50.0

_INTERNAL_MARKERS = ("自社原料", "internal material", "in-house material")


def profile_digest(profile: RequirementProfile) -> str:
    payload = orjson.dumps(profile.prompt_payload(), option=orjson.OPT_SORT_KEYS)
    return hashlib.sha256(payload).hexdigest()[:12]


def claims_internal_material(reason: ScoringReason) -> bool:
    text = f"{reason.feature} {reason.reason}".lower()
    return any(marker.lower() in text for marker in _INTERNAL_MARKERS)


def _internal_material_reason(names: list[str]) -> ScoringReason:
    return ScoringReason(
        feature=INTERNAL_MATERIAL_FEATURE,
        reason=f"自社原料「{'、'.join(names)}」を活用できるため、品質管理とコスト面で優位性があります。",
        score_effect=INTERNAL_MATERIAL_BONUS,
    )


def fallback_candidates(profile: RequirementProfile) -> list[ScoredProposal]:
    """Deterministic single candidate used when the model gives no usable answer."""
    product_type = profile.product_type.value or "化粧品"
    return [
        ScoredProposal(
            id=f"fallback-{profile_digest(profile)}",
            rank=1,
            score=FALLBACK_SCORE,
            product_name_suggestion=f"{product_type} 提案 A / {product_type} Proposal A",
            concept_summary="AI生成に一時的に失敗しましたが、要件に基づいた標準的な提案です。",
            key_features=["要件準拠", "短納期", "コストパフォーマンス"],
            scoring_reasons=[],
        )
    ]


def reconcile_candidates(
    candidates: list[ScoredProposal],
    profile: RequirementProfile,
    catalog: MaterialCatalog,
) -> list[ScoredProposal]:
    """Bring model candidates in line with the ranking invariants.

    Ranks become 1..n in (model rank, -score) order with at most three
    candidates, ids are unique, and internal-material reasons appear only
    when the catalog actually backs them.
    """
    ordered = sorted(candidates, key=lambda c: (c.rank, -c.score))[:MAX_CANDIDATES]

    result = []
    seen_ids = set()
    for rank, candidate in enumerate(ordered, start=1):
        candidate = candidate.model_copy(deep=True)
        candidate.rank = rank
        candidate.id = candidate.id.strip()
        if not candidate.id or candidate.id in seen_ids or candidate.id.startswith("fallback-"):
            candidate.id = f"proposal-{uuid.uuid4().hex[:12]}"
        seen_ids.add(candidate.id)

        if not catalog:
            candidate.scoring_reasons = [
                r for r in candidate.scoring_reasons if not claims_internal_material(r)
            ]
        elif not any(claims_internal_material(r) for r in candidate.scoring_reasons):
            used = catalog.matching(candidate.searchable_text())
            if used:
                candidate.scoring_reasons.append(
                    _internal_material_reason([m.trade_name or m.inci_name for m in used])
                )
        result.append(candidate)

    if catalog and result:
        preferred = catalog.matching(profile.hero_ingredients_preference.value)
        uses_catalog = any(
            claims_internal_material(r) for c in result for r in c.scoring_reasons
        )
        if preferred and not uses_catalog:
            result[0].scoring_reasons.append(
                _internal_material_reason([m.trade_name or m.inci_name for m in preferred])
            )
    return result


class ProposalRanker:
    """Produces ranked candidates and records each one in the candidate cache.

    Model failures never reach the caller: they are logged and the
    deterministic fallback list is returned instead.
    """

    def __init__(self, llm: LLMClient, cache: CandidateCache):
        self.llm = llm
        self.cache = cache

    def rank(self, profile: RequirementProfile, catalog: Optional[MaterialCatalog] = None) -> list[ScoredProposal]:
        catalog = catalog if catalog is not None else MaterialCatalog()
        try:
            candidates = self._generate(profile, catalog)
        except RankingFailure as e:
            logger.warning("Ranking failed, returning fallback candidate: %s", e)
            candidates = fallback_candidates(profile)

        for candidate in candidates:
            self.cache.put(candidate.id, RankingContext(candidate=candidate, profile=profile))
        return candidates

    def build_prompt(self, profile: RequirementProfile, catalog: MaterialCatalog) -> str:
        if catalog:
            material_context = RANKING_MATERIAL_CONTEXT.format(materials_json=catalog.to_prompt_json())
        else:
            material_context = RANKING_NO_MATERIAL_CONTEXT

        research_context = ""
        if profile.client_research is not None:
            research_context = RANKING_RESEARCH_CONTEXT.format(
                company_name=profile.client_research.company_name,
                summary=profile.client_research.summary,
            )

        return RANKING_USER.format(
            profile_json=json.dumps(profile.prompt_payload(), ensure_ascii=False, indent=2),
            material_context=material_context,
            research_context=research_context,
        )

    def _generate(self, profile: RequirementProfile, catalog: MaterialCatalog) -> list[ScoredProposal]:
        try:
            response = self.llm.generate_structured(
                prompt=self.build_prompt(profile, catalog),
                response_model=RankingResponse,
                system=OEM_PLANNER_SYSTEM,
                temperature=0.5,
                max_tokens=4096,
                operation="rank_proposals",
            )
        except ProposalPipelineError as e:
            raise RankingFailure(str(e)) from e

        candidates = reconcile_candidates(response.proposals, profile, catalog)
        if not candidates:
            raise RankingFailure("model returned no candidates")
        logger.info(
            "Ranked %d candidates (top score %.0f, %d catalog materials)",
            len(candidates), candidates[0].score, len(catalog),
        )
        return candidates
