"""Email tone rewriting for proposal email drafts."""

import logging
import re
from enum import Enum
from typing import Union

from webapp.proposal.errors import InputValidationError, ProposalPipelineError, RewriteFailure
from webapp.proposal.llm import LLMClient
from webapp.proposal.prompts import REWRITE_USER

logger = logging.getLogger(__name__)


class ToneDirective(str, Enum):
    MORE_FORMAL = "more_formal"
    MORE_CASUAL = "more_casual"
    SHORTER = "shorter"
    LONGER = "longer"
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"

    @property
    def instruction(self) -> str:
        return TONE_INSTRUCTIONS[self]


TONE_INSTRUCTIONS = {
    ToneDirective.MORE_FORMAL: "より丁寧でフォーマルな表現に書き直してください。敬語を適切に使用し、ビジネス文書として洗練された文章にしてください。",
    ToneDirective.MORE_CASUAL: "よりカジュアルで親しみやすい表現に書き直してください。堅苦しさを減らし、読みやすい文章にしてください。",
    ToneDirective.SHORTER: "より簡潔に要点をまとめて書き直してください。冗長な表現を削除し、必要な情報だけを残してください。",
    ToneDirective.LONGER: "より詳しく丁寧に説明を加えて書き直してください。背景情報や具体例を追加し、理解しやすい文章にしてください。",
    ToneDirective.FRIENDLY: "より親しみやすく温かみのある表現に書き直してください。相手との距離を縮める表現を使用してください。",
    ToneDirective.PROFESSIONAL: "よりプロフェッショナルで専門的な表現に書き直してください。業界用語を適切に使用し、信頼感のある文章にしてください。",
}

_FENCE = re.compile(r"```[a-zA-Z]*\n?([\s\S]*?)```")
# Whole lines of meta-commentary that introduce the email.
_PREAMBLE = re.compile(
    r"^\s*((here\s+is|here's|below\s+is)\b[^\n]*[:：]"
    r"|以下(が|は)?[^\n]*(書き直|リライト)[^\n]*[。:：]"
    r"|書き直し(た|まし)[^\n]*[。:：]"
    r"|【[^】]*】)\s*$",
    re.IGNORECASE,
)
_TRAILING_NOTE = re.compile(r"^\s*(note\s*[:：]|注\s*[:：]|※\s*(書き直し|変更点)[^\n]*[:：])", re.IGNORECASE)
_BLOCK_BREAK = re.compile(r"\n[ \t　]*\n")


def strip_wrapper(text: str) -> str:
    """Remove fences, leading preamble lines and a trailing rewrite note around an email."""
    fenced = _FENCE.search(text)
    if fenced:
        text = fenced.group(1)

    lines = text.replace("\r\n", "\n").strip().split("\n")
    while lines and (not lines[0].strip() or _PREAMBLE.match(lines[0])):
        lines.pop(0)
    body = "\n".join(lines).strip()

    # Only the last blank-line-separated block can be a note about the rewrite.
    breaks = list(_BLOCK_BREAK.finditer(body))
    if breaks and _TRAILING_NOTE.match(body[breaks[-1].end():]):
        body = body[:breaks[-1].start()]
    return body.strip()


def parse_tone(tone: Union[str, ToneDirective]) -> ToneDirective:
    try:
        return ToneDirective(tone)
    except ValueError:
        raise InputValidationError(f"unknown tone: {tone!r}", "指定されたトーンは利用できません。") from None


class EmailRewriter:
    """Rewrites an email draft toward a tone. Stateless; nothing is persisted."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    def rewrite(self, original_content: str, tone: Union[str, ToneDirective]) -> str:
        if not original_content or not original_content.strip():
            raise InputValidationError("empty email content", "メール本文が空です。")
        directive = parse_tone(tone)

        prompt = REWRITE_USER.format(instruction=directive.instruction, content=original_content.strip())
        try:
            response = self.llm.generate(
                prompt=prompt,
                temperature=0.7,
                max_tokens=2000,
                operation=f"rewrite_email_{directive.value}",
            )
        except ProposalPipelineError as e:
            raise RewriteFailure(str(e), "メールの書き直しに失敗しました。") from e

        rewritten = strip_wrapper(response.text)
        if not rewritten:
            raise RewriteFailure("model returned an empty rewrite", "メールの書き直しに失敗しました。")
        logger.info("Rewrote email (%s): %d -> %d chars", directive.value, len(original_content), len(rewritten))
        return rewritten
