"""Read-only view of the in-house material catalog, plus AI-assisted material parsing."""

import json
import logging
from typing import Iterable, Iterator, Optional

from processors.content_extractor import ContentExtractor
from schemas.material import Material
from scrapers.utils import fetch_page_text
from webapp.proposal.errors import ExtractionFailure, InputValidationError, ProposalPipelineError
from webapp.proposal.extractor import is_absolute_url
from webapp.proposal.llm import Attachment, LLMClient
from webapp.proposal.prompts import MATERIAL_INPUT_BLOCK, MATERIAL_PARSE_USER, OEM_PLANNER_SYSTEM

logger = logging.getLogger(__name__)


class MaterialCatalog:
    """Immutable snapshot of the materials an owner can supply.

    The ranker and detailer read from it; registration goes through the store.
    """

    def __init__(self, materials: Iterable[Material] = ()):
        self._materials = tuple(m.model_copy(deep=True) for m in materials)

    @property
    def materials(self) -> tuple[Material, ...]:
        return self._materials

    def __len__(self) -> int:
        return len(self._materials)

    def __iter__(self) -> Iterator[Material]:
        return iter(self._materials)

    def __bool__(self) -> bool:
        return bool(self._materials)

    def find(self, name: str) -> Optional[Material]:
        """Exact (case-insensitive) trade-name or INCI lookup, then a material named inside ``name``."""
        key = (name or "").strip().lower()
        if not key:
            return None
        for m in self._materials:
            if key in (n.lower() for n in m.names()):
                return m
        for m in self._materials:
            if m.matches(key):
                return m
        return None

    def matching(self, text: str) -> list[Material]:
        """Materials whose trade name or INCI name appears in ``text``."""
        return [m for m in self._materials if m.matches(text)]

    def to_prompt_json(self) -> str:
        data = [m.model_dump(mode="json", exclude={"id"}) for m in self._materials]
        return json.dumps(data, ensure_ascii=False, indent=2)


class MaterialParser:
    """Extracts an unsaved ``Material`` from free text, a spec sheet or a supplier page."""

    def __init__(self, llm: LLMClient, content_extractor: Optional[ContentExtractor] = None):
        self.llm = llm
        self.content_extractor = content_extractor or ContentExtractor()

    def parse_text(self, text: str) -> Material:
        if not text or not text.strip():
            raise InputValidationError("empty material text", "原料情報を入力してください。")
        prompt = MATERIAL_PARSE_USER + MATERIAL_INPUT_BLOCK.format(content=text.strip())
        return self._run(prompt, operation="parse_material_text")

    def parse_document(self, data: bytes, media_type: str = "application/pdf", filename: str = "") -> Material:
        if not data:
            raise InputValidationError("empty document", "ファイルが空です。")
        attachment = Attachment(data=data, media_type=media_type or "application/pdf", filename=filename)
        return self._run(MATERIAL_PARSE_USER, operation="parse_material_document", attachments=[attachment])

    def parse_url(self, url: str) -> Material:
        """Fetch the supplier page server-side and parse its text."""
        url = (url or "").strip()
        if not is_absolute_url(url):
            raise InputValidationError(f"not an absolute URL: {url!r}", "有効なURLを入力してください。")

        title, text = fetch_page_text(url)
        text = self.content_extractor.clean(text)
        if not text:
            raise ExtractionFailure(f"could not fetch {url}", "URLからのコンテンツ取得に失敗しました。")
        logger.info("Fetched %d chars from %s", len(text), url)

        content = f"{title}\n\n{text}" if title else text
        prompt = MATERIAL_PARSE_USER + MATERIAL_INPUT_BLOCK.format(content=content)
        return self._run(prompt, operation="parse_material_url")

    def _run(self, prompt: str, operation: str, attachments=None) -> Material:
        try:
            material = self.llm.generate_structured(
                prompt=prompt,
                response_model=Material,
                system=OEM_PLANNER_SYSTEM,
                attachments=attachments,
                temperature=0.1,
                operation=operation,
            )
        except ProposalPipelineError as e:
            raise ExtractionFailure(str(e), "原料情報の抽出に失敗しました。") from e
        # Ids are assigned on registration, never by the model.
        return material.model_copy(update={"id": ""})
