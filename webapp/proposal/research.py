"""Client research: web-search-grounded summary of a client company."""

import logging
import re

from schemas.requirement import ClientResearch
from webapp.proposal.errors import InputValidationError, ProposalPipelineError, ResearchFailure
from webapp.proposal.llm import LLMClient
from webapp.proposal.prompts import RESEARCH_USER

logger = logging.getLogger(__name__)

MAX_TOPICS = 5

_BULLET = re.compile(r"^\s*(?:[-*・•●]|\d+[.)．])\s*(.+)$")
_BRAND_HINTS = ("ブランド", "SNS", "雰囲気", "イメージ", "brand")


def bullet_lines(summary: str) -> list[str]:
    lines = []
    for line in summary.splitlines():
        match = _BULLET.match(line)
        if match:
            text = match.group(1).replace("**", "").strip()
            if text:
                lines.append(text)
    return lines


class ClientResearcher:
    """Collects recent activity, brand atmosphere and focus areas for a client."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    def research(self, company_name: str, website_url: str = "") -> ClientResearch:
        company_name = (company_name or "").strip()
        website_url = (website_url or "").strip()
        if not company_name:
            raise InputValidationError("company name is required", "企業名を入力してください。")

        prompt = RESEARCH_USER.format(
            company_name=company_name,
            url_line=f"URL: {website_url}" if website_url else "",
        )
        try:
            response = self.llm.generate(
                prompt=prompt,
                web_search=True,
                temperature=0.3,
                max_tokens=2048,
                operation="client_research",
            )
        except ProposalPipelineError as e:
            raise ResearchFailure(str(e), "企業リサーチに失敗しました。") from e

        summary = response.text.strip()
        if not summary:
            raise ResearchFailure("empty research summary", "企業リサーチに失敗しました。")

        bullets = bullet_lines(summary)
        brand_vibe = next(
            (b for b in bullets if any(hint in b for hint in _BRAND_HINTS)), ""
        )
        research = ClientResearch(
            company_name=company_name,
            website_url=website_url,
            summary=summary,
            recent_topics=[b for b in bullets if b != brand_vibe][:MAX_TOPICS],
            brand_vibe=brand_vibe,
            extracted_urls=response.grounding_sources,
        )
        logger.info(
            "Research for %s: %d topics, %d source URLs",
            company_name, len(research.recent_topics), len(research.extracted_urls),
        )
        return research
