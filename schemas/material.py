"""Pydantic models for the in-house ingredient catalog."""

import re
from enum import Enum

from pydantic import BaseModel, Field, field_validator

# A maximal run of Latin words; commas, list marks and Japanese text end it.
_LATIN_ITEM = re.compile(r"[a-z0-9][a-z0-9 \-'.()&+]*")


class CostLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def order(self) -> int:
        return _COST_ORDER[self]

    def __lt__(self, other):
        if not isinstance(other, CostLevel):
            return NotImplemented
        return self.order < other.order

    def __le__(self, other):
        if not isinstance(other, CostLevel):
            return NotImplemented
        return self.order <= other.order

    def __gt__(self, other):
        if not isinstance(other, CostLevel):
            return NotImplemented
        return self.order > other.order

    def __ge__(self, other):
        if not isinstance(other, CostLevel):
            return NotImplemented
        return self.order >= other.order

    @classmethod
    def parse(cls, value) -> "CostLevel":
        if isinstance(value, CostLevel):
            return value
        text = str(value or "").strip().lower()
        return _COST_ALIASES.get(text, cls.MEDIUM)


_COST_ORDER = {CostLevel.LOW: 0, CostLevel.MEDIUM: 1, CostLevel.HIGH: 2}

_COST_ALIASES = {
    "low": CostLevel.LOW,
    "低": CostLevel.LOW,
    "安価": CostLevel.LOW,
    "medium": CostLevel.MEDIUM,
    "mid": CostLevel.MEDIUM,
    "中": CostLevel.MEDIUM,
    "high": CostLevel.HIGH,
    "高": CostLevel.HIGH,
    "高価": CostLevel.HIGH,
}


class Material(BaseModel):
    """An ingredient the company can supply from its own inventory."""

    id: str = ""
    trade_name: str = Field(default="", description="製品名・商品名")
    inci_name: str = Field(default="", description="INCI名・表示名称")
    manufacturer: str = Field(default="", description="メーカー名")
    description: str = Field(default="", description="製品の詳細説明")
    benefits: list[str] = Field(default_factory=list, description="効果効能・メリット")
    category: str = Field(default="", description="カテゴリ (例: 保湿剤, 界面活性剤)")
    recommended_concentration: str = Field(default="", description="推奨濃度")
    cost_level: CostLevel = Field(default=CostLevel.MEDIUM, description="コスト感 (High, Medium, Low)")
    price: str = Field(default="", description="価格情報 (例: 15,000円/kg)")
    origin: str = Field(default="", description="原料の産地 (例: 北海道, ブルガリア)")
    country: str = Field(default="", description="原産国 (例: 日本, フランス)")
    sustainability: str = Field(default="", description="サステナビリティ情報")
    certifications: list[str] = Field(
        default_factory=list, description="オーガニック等の認証 (例: COSMOS, Ecocert)"
    )

    @field_validator("cost_level", mode="before")
    @classmethod
    def _parse_cost_level(cls, v):
        return CostLevel.parse(v)

    @field_validator(
        "trade_name", "inci_name", "manufacturer", "description", "category",
        "recommended_concentration", "price", "origin", "country", "sustainability",
        mode="before",
    )
    @classmethod
    def _none_is_blank(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("benefits", "certifications", mode="before")
    @classmethod
    def _coerce_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.replace("、", ",").split(",") if part.strip()]
        return v

    @property
    def is_organic_certified(self) -> bool:
        return bool(self.certifications)

    def names(self) -> list[str]:
        return [n for n in (self.trade_name, self.inci_name) if n]

    def matches(self, text: str) -> bool:
        """Case-insensitive test whether ``text`` mentions this material by name.

        Japanese names match anywhere in the text. Multi-word Latin names
        match on word boundaries. A single-word Latin name such as ``Water``
        only matches a standalone Latin item (one entry of an INCI list, or
        a Latin word set in Japanese text), never the tail of a longer name.
        """
        if not text:
            return False
        haystack = text.lower()
        latin_items = None
        for name in self.names():
            name = name.lower()
            if not name.isascii():
                if name in haystack:
                    return True
            elif " " in name:
                if re.search(rf"(?<![a-z0-9]){re.escape(name)}(?![a-z0-9])", haystack):
                    return True
            else:
                if latin_items is None:
                    latin_items = {item.strip(" -.()'") for item in _LATIN_ITEM.findall(haystack)}
                if name in latin_items:
                    return True
        return False
