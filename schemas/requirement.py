"""Pydantic models for client requirement profiles and client research."""

import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

REVIEW_THRESHOLD = 0.8

PRODUCT_TYPES = [
    "化粧水", "美容液", "乳液", "クリーム", "ジェル", "オイル", "シャンプー",
    "コンディショナー", "ボディクリーム", "ハンドクリーム", "リップ", "その他",
]

PURPOSE_GOALS = ["保湿", "美白", "エイジングケア", "毛穴", "皮脂", "敏感肌ケア", "鎮静", "色補正"]

CERTIFICATION_OPTIONS = ["COSMOS", "Ecocert", "Vegan", "Cruelty-Free"]

FIELD_LABELS = {
    "product_type": "製品タイプ",
    "purpose_goals": "目的・ゴール",
    "target_audience": "ターゲット層",
    "hero_ingredients_preference": "希望主成分・避けたい成分",
    "claims_must": "必須訴求",
    "certifications": "希望認証",
    "allergens_restrictions": "アレルゲン・NG成分",
    "sensory": "使用感・香り・色",
    "markets": "想定販売国・地域",
    "lot_size": "想定ロットサイズ",
    "budget_band": "想定予算",
    "lead_time_expectation": "希望納期",
    "package_preferences": "パッケージ希望",
    "sustainability": "サステナビリティ要件",
    "brand_story_tone": "ブランドコンセプト・トーン",
    "references": "参考製品",
    "contact_info_internal": "社内担当者・顧客名",
}

LIST_FIELDS = ("purpose_goals", "certifications")

_LIST_SPLIT = re.compile(r"[,、，/／\n]+")


# ── Confidence-annotated values ──


class ConfidenceField(BaseModel):
    """A value paired with the extractor's confidence in it.

    ``confidence`` is ``None`` when nobody scored the value (manual entry)
    and ``0.0`` when the extractor found no evidence. An empty value never
    carries a positive confidence.
    """

    confidence: Optional[float] = Field(
        default=None, description="抽出の信頼度スコア (0.0-1.0)"
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        if v is None or v == "":
            return None
        try:
            v = float(v)
        except (TypeError, ValueError):
            return None
        return min(max(v, 0.0), 1.0)

    def is_empty(self) -> bool:
        return not self.value

    @model_validator(mode="after")
    def _empty_has_no_confidence(self):
        if self.is_empty() and self.confidence:
            self.confidence = 0.0
        return self


class TextField(ConfidenceField):
    value: str = Field(default="", description="抽出された値")

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        if v is None:
            return ""
        if isinstance(v, list):
            return "、".join(str(item).strip() for item in v if str(item).strip())
        return str(v).strip()


class ListField(ConfidenceField):
    value: list[str] = Field(default_factory=list, description="抽出された値のリスト")

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = _LIST_SPLIT.split(v)
        return [str(item).strip() for item in v if item is not None and str(item).strip()]


def needs_review(field: ConfidenceField) -> bool:
    """True when the field was scored and the score is below the review threshold."""
    return field.confidence is not None and field.confidence < REVIEW_THRESHOLD


# ── Client research ──


class ClientResearch(BaseModel):
    """Web research about the client company, attached read-only to a profile."""

    company_name: str
    website_url: str = ""
    summary: str = ""
    recent_topics: list[str] = Field(default_factory=list)
    brand_vibe: str = ""
    extracted_urls: list[str] = Field(default_factory=list)


# ── Requirement profile ──


class RequirementFields(BaseModel):
    """The seventeen confidence-annotated requirement fields.

    This is the payload the extractor asks the model for; ``RequirementProfile``
    adds the bookkeeping a model should never fill in.
    """

    product_type: TextField = Field(default_factory=TextField, description="製品タイプ (例: 化粧水, 美容液)")
    purpose_goals: ListField = Field(default_factory=ListField, description="目的・ゴール (例: 保湿, エイジングケア)")
    target_audience: TextField = Field(default_factory=TextField, description="ターゲット層 (例: 20代女性、敏感肌)")
    hero_ingredients_preference: TextField = Field(default_factory=TextField, description="希望主成分・避けたい成分")
    claims_must: TextField = Field(default_factory=TextField, description="必須訴求 (例: 95%オーガニック)")
    certifications: ListField = Field(default_factory=ListField, description="希望認証 (例: COSMOS, Vegan)")
    allergens_restrictions: TextField = Field(default_factory=TextField, description="アレルゲン・NG成分")
    sensory: TextField = Field(default_factory=TextField, description="使用感・香り・色")
    markets: TextField = Field(default_factory=TextField, description="想定販売国・地域")
    lot_size: TextField = Field(default_factory=TextField, description="想定ロットサイズ")
    budget_band: TextField = Field(default_factory=TextField, description="想定予算")
    lead_time_expectation: TextField = Field(default_factory=TextField, description="希望納期")
    package_preferences: TextField = Field(default_factory=TextField, description="パッケージ希望")
    sustainability: TextField = Field(default_factory=TextField, description="サステナビリティ要件")
    brand_story_tone: TextField = Field(default_factory=TextField, description="ブランドコンセプト・トーン")
    references: TextField = Field(default_factory=TextField, description="参考製品")
    contact_info_internal: TextField = Field(default_factory=TextField, description="社内担当者・顧客名")

    @field_validator(*FIELD_LABELS.keys(), mode="before")
    @classmethod
    def _missing_field_is_empty(cls, v):
        # Models sometimes drop the wrapper object or send null.
        if v is None:
            return {}
        if not isinstance(v, (dict, BaseModel)):
            return {"value": v}
        return v


class RequirementProfile(RequirementFields):
    """Structured representation of a client's OEM product request.

    Reviewers change fields through ``revise``, which returns a new profile;
    a profile handed to the ranker is never edited in place.
    """

    source: Literal["form", "file"] = "form"
    client_research: Optional[ClientResearch] = None

    @classmethod
    def field_names(cls) -> list[str]:
        return list(FIELD_LABELS.keys())

    def fields(self) -> dict[str, ConfidenceField]:
        return {name: getattr(self, name) for name in FIELD_LABELS}

    def review_fields(self) -> list[str]:
        """Names of fields a human should double-check."""
        return [name for name, f in self.fields().items() if needs_review(f)]

    def revise(self, field_name: str, value) -> "RequirementProfile":
        """Return a copy with one field replaced by a reviewer-entered value."""
        if field_name not in FIELD_LABELS:
            raise KeyError(f"Unknown requirement field: {field_name}")
        field_cls = ListField if field_name in LIST_FIELDS else TextField
        revised = field_cls(value=value)
        revised.confidence = 0.0 if revised.is_empty() else 1.0
        return self.model_copy(deep=True, update={field_name: revised})

    def with_research(self, research: Optional[ClientResearch]) -> "RequirementProfile":
        return self.model_copy(deep=True, update={"client_research": research})

    def prompt_payload(self) -> dict:
        """Profile as a plain dict for prompt embedding (research summarised separately)."""
        return self.model_dump(mode="json", exclude={"client_research"})
