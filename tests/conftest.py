"""Shared test fixtures for the OEM proposal assistant test suite."""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

from schemas.material import Material
from schemas.requirement import ClientResearch, RequirementProfile
from webapp.proposal.llm import LLMClient, ModelResponse


class FakeLLM(LLMClient):
    """LLMClient that replays queued responses instead of calling a provider.

    Queue strings, dicts/lists (sent as JSON), ``ModelResponse`` objects, or
    exceptions to raise. Every call is recorded in ``calls``.
    """

    def __init__(self, *responses):
        super().__init__(provider="anthropic", model="fake-model", client=object())
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def _call(self, prompt, system, attachments, json_mode, web_search, temperature, max_tokens):
        self.calls.append({
            "prompt": prompt,
            "system": system,
            "attachments": attachments,
            "json_mode": json_mode,
            "web_search": web_search,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if not self.responses:
            raise AssertionError("unexpected model call")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, ModelResponse):
            return item
        if not isinstance(item, str):
            item = json.dumps(item, ensure_ascii=False)
        return ModelResponse(text=item)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def sample_profile():
    return RequirementProfile.model_validate({
        "source": "form",
        "product_type": {"value": "化粧水", "confidence": 1.0},
        "purpose_goals": {"value": ["保湿"], "confidence": 0.95},
        "target_audience": {"value": "20代女性", "confidence": 1.0},
        "hero_ingredients_preference": {"value": "ヒアルロン酸, セラミド", "confidence": 0.9},
        "budget_band": {"value": "", "confidence": 0.0},
        "lot_size": {"value": "5,000本", "confidence": 0.6},
    })


@pytest.fixture
def sample_research():
    return ClientResearch(
        company_name="株式会社サンプルコスメ",
        website_url="https://sample-cosme.example.com",
        summary="- 2024年秋に敏感肌向けラインを発売\n- SNSではナチュラルで親しみやすいブランドの雰囲気",
        recent_topics=["2024年秋に敏感肌向けラインを発売"],
        brand_vibe="SNSではナチュラルで親しみやすいブランドの雰囲気",
        extracted_urls=["https://news.example.com/a"],
    )


@pytest.fixture
def sample_materials():
    return [
        Material(
            id="mat-1",
            trade_name="ヒアルロン酸Na",
            inci_name="Sodium Hyaluronate",
            manufacturer="サンプル化学",
            benefits=["保湿"],
            category="保湿剤",
            cost_level="Medium",
        ),
        Material(
            id="mat-2",
            trade_name="ビオセラミド",
            inci_name="Ceramide NP",
            manufacturer="サンプル化学",
            benefits=["バリア機能"],
            category="保湿剤",
            cost_level="High",
            certifications=["COSMOS"],
        ),
    ]


def ranking_payload(with_internal_reason: bool = True) -> dict:
    first_reasons = [{"feature": "保湿訴求", "reason": "要望に忠実", "score_effect": 10}]
    if with_internal_reason:
        first_reasons.append(
            {"feature": "自社原料活用", "reason": "自社原料のヒアルロン酸Naを配合", "score_effect": 5}
        )
    return {
        "proposals": [
            {
                "id": "p-2", "rank": 2, "score": 78,
                "product_name_suggestion": "トレンド化粧水 / Trend Toner",
                "concept_summary": "発酵エキスを使ったトレンド重視の提案",
                "key_features": ["発酵エキス", "低刺激", "詰め替え"],
                "scoring_reasons": [{"feature": "トレンド", "reason": "発酵トレンド", "score_effect": 3}],
            },
            {
                "id": "p-1", "rank": 1, "score": 92,
                "product_name_suggestion": "モイスト化粧水 / Moist Toner",
                "concept_summary": "ヒアルロン酸Naで20代の乾燥肌に寄り添う保湿化粧水",
                "key_features": ["高保湿", "ヒアルロン酸Na", "無香料"],
                "scoring_reasons": first_reasons,
            },
            {
                "id": "p-3", "rank": 3, "score": 70,
                "product_name_suggestion": "コスト重視化粧水 / Value Toner",
                "concept_summary": "汎用原料で価格を抑えた提案",
                "key_features": ["低コスト", "短納期", "大容量"],
                "scoring_reasons": [],
            },
        ]
    }


def detail_payload(language: str = "jp", ingredients=None) -> dict:
    jp = language == "jp"
    return {
        "executive_summary": "20代向け高保湿化粧水のご提案です。" if jp else "A high-moisture toner for women in their 20s.",
        "product_name_suggestions": ["モイスト化粧水"] if jp else ["Moist Toner"],
        "tagline": "うるおいを、毎日に。" if jp else "Moisture, every day.",
        "concept_summary": "ヒアルロン酸Naで保湿" if jp else "Hydration with sodium hyaluronate",
        "main_ingredients": ingredients if ingredients is not None else [
            {"inci": "Sodium Hyaluronate", "common_name": "ヒアルロン酸Na", "percentage_range": "0.1-0.5%", "is_internal_material": False},
            {"inci": "Glycerin", "common_name": "グリセリン", "percentage_range": "3-5%", "is_internal_material": True},
        ],
        "expected_functions": [{"func": "保湿", "evidence": "角層水分量の向上"}],
        "package_proposals": [{"name": "PETボトル", "capacity": "150ml", "material": "PET", "moq": "5,000",
                               "lead_time": "60日", "decoration": "シルク印刷", "cost_range": "40-60円"}],
        "manufacturing_estimate": {"lot_size": "5,000本", "lead_time": "3ヶ月", "schedule": "処方開発→安定性試験→量産"},
        "cost_range": {"materials": "80円", "filling": "20円", "container": "50円", "printing": "10円", "total": "160円"},
        "regulatory_notes": "化粧品基準に準拠",
        "risks_and_uncertainties": "原料価格の変動",
        "next_actions": ["サンプル試作", "お打ち合わせ"],
        "email_drafts": {
            "standard": "株式会社サンプルコスメ\r\n山田様\r\n\r\n\r\n\r\nご提案をお送りします。",
            "formal": "株式会社サンプルコスメ\n山田様\n\n謹んでご提案申し上げます。",
            "casual": "山田さん\n\nご提案をお送りしますね。",
        },
    }
