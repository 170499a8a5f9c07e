"""Requirement extraction: free text, documents and URLs to a RequirementProfile."""

import logging
from dataclasses import dataclass
from typing import Union
from urllib.parse import urlparse

from schemas.requirement import FIELD_LABELS, RequirementFields, RequirementProfile
from webapp.proposal.errors import ExtractionFailure, InputValidationError, ProposalPipelineError
from webapp.proposal.llm import Attachment, LLMClient
from webapp.proposal.prompts import (
    CONFIDENCE_RULES,
    EXTRACT_DOCUMENT_USER,
    EXTRACT_TEXT_USER,
    EXTRACT_URL_USER,
    OEM_PLANNER_SYSTEM,
)

logger = logging.getLogger(__name__)

SUPPORTED_DOCUMENT_TYPES = ("application/pdf", "text/", "image/")
UNSCORED_CONFIDENCE = 0.5


@dataclass
class RawText:
    text: str


@dataclass
class Document:
    data: bytes
    media_type: str = "application/pdf"
    filename: str = ""


@dataclass
class Url:
    url: str


ExtractionInput = Union[RawText, Document, Url]


def is_absolute_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def reconcile_fields(fields: RequirementFields) -> dict:
    """Normalise model output field by field.

    A value reported with confidence 0 is discarded, and an empty value
    never keeps a positive confidence. A value the model returned without
    a score gets UNSCORED_CONFIDENCE so it is flagged for review.
    """
    reconciled = {}
    for name in FIELD_LABELS:
        field = getattr(fields, name)
        if field.is_empty() or field.confidence == 0.0:
            field = type(field)(confidence=0.0)
        elif field.confidence is None:
            field = field.model_copy(update={"confidence": UNSCORED_CONFIDENCE})
        reconciled[name] = field
    return reconciled


class RequirementExtractor:
    """Turns an inquiry into a confidence-annotated RequirementProfile.

    Each call is independent; the only side effect is the model request.
    """

    def __init__(self, llm: LLMClient):
        self.llm = llm

    def extract(self, source: ExtractionInput) -> RequirementProfile:
        if isinstance(source, RawText):
            return self.extract_text(source.text)
        if isinstance(source, Document):
            return self.extract_document(source.data, source.media_type, source.filename)
        if isinstance(source, Url):
            return self.extract_url(source.url)
        raise InputValidationError(f"unsupported input type: {type(source).__name__}")

    def extract_text(self, text: str) -> RequirementProfile:
        if not text or not text.strip():
            raise InputValidationError("empty inquiry text", "問い合わせテキストを入力してください。")
        prompt = EXTRACT_TEXT_USER.format(rules=CONFIDENCE_RULES, text=text.strip())
        return self._run(prompt, source="form", operation="extract_text")

    def extract_document(self, data: bytes, media_type: str = "application/pdf", filename: str = "") -> RequirementProfile:
        if not data:
            raise InputValidationError("empty document", "ファイルが空です。")
        media_type = (media_type or "application/pdf").lower()
        if not media_type.startswith(SUPPORTED_DOCUMENT_TYPES):
            raise InputValidationError(
                f"unsupported media type: {media_type}",
                "PDF・画像・テキストファイルをアップロードしてください。",
            )
        label = f"（{filename}）" if filename else "（PDF等）"
        prompt = EXTRACT_DOCUMENT_USER.format(filename=label, rules=CONFIDENCE_RULES)
        attachment = Attachment(data=data, media_type=media_type, filename=filename)
        return self._run(prompt, source="file", operation="extract_document", attachments=[attachment])

    def extract_url(self, url: str) -> RequirementProfile:
        """Infer requirements from the URL string alone; the page is not fetched."""
        url = (url or "").strip()
        if not is_absolute_url(url):
            raise InputValidationError(f"not an absolute URL: {url!r}", "有効なURLを入力してください。")
        prompt = EXTRACT_URL_USER.format(url=url, rules=CONFIDENCE_RULES)
        return self._run(prompt, source="file", operation="extract_url")

    def _run(self, prompt: str, source: str, operation: str, attachments=None) -> RequirementProfile:
        try:
            fields = self.llm.generate_structured(
                prompt=prompt,
                response_model=RequirementFields,
                system=OEM_PLANNER_SYSTEM,
                attachments=attachments,
                temperature=0.1,
                operation=operation,
            )
        except ProposalPipelineError as e:
            logger.error("%s failed: %s", operation, e)
            raise ExtractionFailure(
                str(e), "AIによる情報の抽出に失敗しました。ファイル形式や内容をご確認ください。"
            ) from e

        profile = RequirementProfile(source=source, **reconcile_fields(fields))
        logger.info(
            "%s extracted %d/%d fields (%d need review)",
            operation,
            sum(1 for f in profile.fields().values() if not f.is_empty()),
            len(FIELD_LABELS),
            len(profile.review_fields()),
        )
        return profile
