"""Proposal detailing: expands one ranked candidate into a bilingual proposal document.

The ranking context (candidate plus the profile it was ranked against) comes
from the caller or the candidate cache. Without it the detailer still
produces a valid, generic proposal for the id.
"""

import json
import logging
import re
from typing import Optional

from schemas.proposal import FullProposal, GeneratedContent, ProposalContent
from webapp.proposal.cache import CandidateCache, RankingContext
from webapp.proposal.catalog import MaterialCatalog
from webapp.proposal.errors import DetailGenerationFailure, InputValidationError, ProposalPipelineError
from webapp.proposal.llm import LLMClient
from webapp.proposal.prompts import (
    DETAIL_CONTEXT,
    DETAIL_GENERIC_CONTEXT,
    DETAIL_MATERIAL_CONTEXT,
    DETAIL_RESEARCH_CONTEXT,
    DETAIL_USER_EN,
    DETAIL_USER_JP,
    OEM_PLANNER_SYSTEM,
)

logger = logging.getLogger(__name__)

DETAIL_MAX_TOKENS = 8192


def normalize_email(text: str) -> str:
    """Unify line endings and collapse runs of blank lines to a single blank line."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def mark_internal_materials(content: ProposalContent, catalog: MaterialCatalog) -> int:
    """Set ``is_internal_material`` from catalog name matches; returns the match count."""
    matched = 0
    for ingredient in content.main_ingredients:
        hit = catalog.find(ingredient.common_name) or catalog.find(ingredient.inci)
        ingredient.is_internal_material = hit is not None
        matched += hit is not None
    return matched


class ProposalDetailer:
    """Expands a candidate id into a ``FullProposal``.

    ``en_mode="generate"`` makes a second, independent English call;
    ``"copy"`` reuses the Japanese content for the English slot. Either call
    failing fails the whole expansion.
    """

    def __init__(self, llm: LLMClient, cache: Optional[CandidateCache] = None, en_mode: str = "generate"):
        if en_mode not in ("generate", "copy"):
            raise ValueError(f"Unsupported en_mode: {en_mode}")
        self.llm = llm
        self.cache = cache
        self.en_mode = en_mode

    def expand(
        self,
        proposal_id: str,
        catalog: Optional[MaterialCatalog] = None,
        cached_context: Optional[RankingContext] = None,
    ) -> FullProposal:
        proposal_id = (proposal_id or "").strip()
        if not proposal_id:
            raise InputValidationError("proposal id is required", "提案IDを指定してください。")
        catalog = catalog if catalog is not None else MaterialCatalog()

        context = cached_context
        if context is None and self.cache is not None:
            context = self.cache.get(proposal_id)
        if context is None:
            logger.warning("No ranking context for %s; generating a generic proposal", proposal_id)

        jp = self._generate_variant(proposal_id, context, catalog, language="jp")
        if self.en_mode == "copy":
            en = jp.model_copy(deep=True)
        else:
            en = self._generate_variant(proposal_id, context, catalog, language="en")
        return FullProposal(id=proposal_id, jp=jp, en=en)

    def build_prompt(
        self,
        proposal_id: str,
        context: Optional[RankingContext],
        catalog: MaterialCatalog,
        language: str = "jp",
    ) -> str:
        if context is not None:
            prompt_context = DETAIL_CONTEXT.format(
                profile_json=json.dumps(context.profile.prompt_payload(), ensure_ascii=False, indent=2),
                candidate_json=json.dumps(context.candidate.model_dump(mode="json"), ensure_ascii=False, indent=2),
            )
        else:
            prompt_context = DETAIL_GENERIC_CONTEXT.format(proposal_id=proposal_id)

        material_context = ""
        if catalog:
            material_context = DETAIL_MATERIAL_CONTEXT.format(materials_json=catalog.to_prompt_json())

        research_context = ""
        if context is not None and context.profile.client_research is not None:
            research_context = DETAIL_RESEARCH_CONTEXT.format(summary=context.profile.client_research.summary)

        template = DETAIL_USER_EN if language == "en" else DETAIL_USER_JP
        return template.format(
            context=prompt_context,
            material_context=material_context,
            research_context=research_context,
        )

    def _generate_variant(
        self,
        proposal_id: str,
        context: Optional[RankingContext],
        catalog: MaterialCatalog,
        language: str,
    ) -> ProposalContent:
        try:
            generated = self.llm.generate_structured(
                prompt=self.build_prompt(proposal_id, context, catalog, language),
                response_model=GeneratedContent,
                system=OEM_PLANNER_SYSTEM,
                temperature=0.5,
                max_tokens=DETAIL_MAX_TOKENS,
                operation=f"expand_proposal_{language}",
            )
        except ProposalPipelineError as e:
            logger.error("Detail generation (%s) failed for %s: %s", language, proposal_id, e)
            raise DetailGenerationFailure(str(e), "詳細提案書の生成に失敗しました。") from e

        content = ProposalContent.model_validate(generated.model_dump())
        for name in ("standard", "formal", "casual"):
            setattr(content.email_drafts, name, normalize_email(getattr(content.email_drafts, name)))
        content.email_draft = content.email_drafts.standard

        matched = mark_internal_materials(content, catalog)
        if context is not None and context.profile.client_research is not None:
            content.client_research = context.profile.client_research.model_copy(deep=True)

        logger.info(
            "Expanded %s (%s): %d ingredients, %d from catalog",
            proposal_id, language, len(content.main_ingredients), matched,
        )
        return content
