"""Pydantic models for ranked candidates and expanded proposal documents."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.requirement import ClientResearch


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    COMPLETED = "completed"


class DraftType(str, Enum):
    STANDARD = "standard"
    FORMAL = "formal"
    CASUAL = "casual"


# ── Ranking ──


class ScoringReason(BaseModel):
    feature: str = ""
    reason: str = ""
    score_effect: float = 0.0


class ScoredProposal(BaseModel):
    """A ranked, scored candidate concept prior to full expansion."""

    id: str = Field(default="", description="提案ID (ユニークな文字列)")
    rank: int = Field(default=1, description="順位 (1, 2, 3)")
    score: float = Field(default=0.0, description="マッチングスコア (0-100)")
    product_name_suggestion: str = Field(
        default="",
        description="製品名の提案 (日本語名 / 英語名 の形式。例: 'ボタニカル化粧水 / Botanical Toner')",
    )
    concept_summary: str = Field(default="", description="コンセプト概要 (50-100文字程度)")
    key_features: list[str] = Field(default_factory=list, description="主な特徴3点")
    scoring_reasons: list[ScoringReason] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        try:
            v = float(v)
        except (TypeError, ValueError):
            return 0.0
        return min(max(v, 0.0), 100.0)

    @field_validator("rank", mode="before")
    @classmethod
    def _coerce_rank(cls, v):
        try:
            return int(v)
        except (TypeError, ValueError):
            return 99

    def searchable_text(self) -> str:
        parts = [self.product_name_suggestion, self.concept_summary, *self.key_features]
        for r in self.scoring_reasons:
            parts.extend([r.feature, r.reason])
        return "\n".join(parts)


class RankingResponse(BaseModel):
    """Response envelope the ranker asks the model for."""

    proposals: list[ScoredProposal] = Field(default_factory=list)


# ── Expanded proposal ──


class Ingredient(BaseModel):
    inci: str = ""
    common_name: str = ""
    percentage_range: str = ""
    is_internal_material: bool = Field(
        default=False, description="自社原料リストにある原料の場合true"
    )


class ExpectedFunction(BaseModel):
    func: str = ""
    evidence: str = ""


class PackageProposal(BaseModel):
    name: str = ""
    capacity: str = ""
    material: str = ""
    moq: str = ""
    lead_time: str = ""
    decoration: str = ""
    cost_range: str = ""


class ManufacturingEstimate(BaseModel):
    lot_size: str = ""
    lead_time: str = ""
    schedule: str = ""


class CostBreakdown(BaseModel):
    materials: str = ""
    filling: str = ""
    container: str = ""
    printing: str = ""
    total: str = ""


class EmailDrafts(BaseModel):
    standard: str = Field(default="", description="標準的なビジネスメール。段落間に空白行を入れる。")
    formal: str = Field(default="", description="堅めの丁寧なビジネスメール。段落間に空白行を入れる。")
    casual: str = Field(default="", description="親しみやすいトーンのメール。段落間に空白行を入れる。")

    def get(self, draft_type: DraftType) -> str:
        return getattr(self, DraftType(draft_type).value)


class _ContentFields(BaseModel):
    executive_summary: str = Field(
        default="", description="提案書全体の要約。提案の魅力とメリットを150文字程度で簡潔に。"
    )
    product_name_suggestions: list[str] = Field(default_factory=list)
    tagline: str = ""
    concept_summary: str = ""
    main_ingredients: list[Ingredient] = Field(default_factory=list)
    expected_functions: list[ExpectedFunction] = Field(default_factory=list)
    package_proposals: list[PackageProposal] = Field(default_factory=list)
    manufacturing_estimate: ManufacturingEstimate = Field(default_factory=ManufacturingEstimate)
    cost_range: CostBreakdown = Field(default_factory=CostBreakdown)
    regulatory_notes: str = ""
    risks_and_uncertainties: str = ""
    next_actions: list[str] = Field(default_factory=list)
    email_drafts: EmailDrafts = Field(default_factory=EmailDrafts)

    @field_validator("manufacturing_estimate", "cost_range", "email_drafts", mode="before")
    @classmethod
    def _null_object_is_empty(cls, v):
        return {} if v is None else v

    @field_validator(
        "product_name_suggestions", "main_ingredients", "expected_functions",
        "package_proposals", "next_actions", mode="before",
    )
    @classmethod
    def _null_list_is_empty(cls, v):
        return [] if v is None else v

    @field_validator("executive_summary", "tagline", "concept_summary",
                     "regulatory_notes", "risks_and_uncertainties", mode="before")
    @classmethod
    def _null_text_is_empty(cls, v):
        return "" if v is None else v


class GeneratedContent(_ContentFields):
    """The part of a proposal document the model writes."""

    @model_validator(mode="after")
    def _require_summary_and_drafts(self):
        missing = [
            name for name in ("standard", "formal", "casual")
            if not getattr(self.email_drafts, name).strip()
        ]
        if not self.executive_summary.strip():
            missing.insert(0, "executive_summary")
        if missing:
            raise ValueError(f"empty required content: {', '.join(missing)}")
        drafts = {
            " ".join(getattr(self.email_drafts, name).split())
            for name in ("standard", "formal", "casual")
        }
        if len(drafts) < 3:
            raise ValueError("email drafts are not distinct")
        return self


class ProposalContent(_ContentFields):
    """One language variant of an expanded proposal document."""

    client_research: Optional[ClientResearch] = None
    email_draft: str = Field(default="", description="Legacy single draft; mirrors email_drafts.standard")


class FullProposal(BaseModel):
    """Bilingual wrapper; both variants share the proposal id."""

    id: str
    jp: ProposalContent
    en: ProposalContent


class ProposalSummary(BaseModel):
    id: str
    client_name: str = ""
    website_url: str = ""
    status: ProposalStatus = ProposalStatus.DRAFT
    created_at: str = ""
    updated_at: str = ""
