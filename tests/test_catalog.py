"""Tests for the material catalog and AI-assisted material parsing."""

import json

import pytest

from schemas.material import CostLevel, Material
from webapp.proposal.catalog import MaterialCatalog, MaterialParser
from webapp.proposal.errors import ExtractionFailure, InputValidationError

from conftest import FakeLLM


PARSED_MATERIAL = {
    "id": "model-made-this-up",
    "trade_name": "ローズウォーター",
    "inci_name": "Rosa Damascena Flower Water",
    "manufacturer": "サンプル香料",
    "benefits": "保湿、整肌",
    "category": "植物エキス",
    "cost_level": "high",
    "origin": "ブルガリア",
    "country": "ブルガリア",
}


class TestMaterialCatalog:

    def test_find_by_trade_or_inci_name(self, sample_materials):
        catalog = MaterialCatalog(sample_materials)
        assert catalog.find("ヒアルロン酸Na").id == "mat-1"
        assert catalog.find("ceramide np").id == "mat-2"

    def test_find_material_named_inside_query(self, sample_materials):
        catalog = MaterialCatalog(sample_materials)
        assert catalog.find("高分子ヒアルロン酸Na（保湿）").id == "mat-1"

    def test_find_does_not_match_fragments(self, sample_materials):
        catalog = MaterialCatalog(sample_materials)
        # "セラミド" alone does not name the catalog's ビオセラミド.
        assert catalog.find("セラミド") is None
        assert catalog.find("") is None

    def test_matching(self, sample_materials):
        catalog = MaterialCatalog(sample_materials)
        found = catalog.matching("ヒアルロン酸NaとCeramide NPを配合")
        assert [m.id for m in found] == ["mat-1", "mat-2"]

    def test_generic_catalog_name_does_not_claim_longer_inci(self):
        catalog = MaterialCatalog([Material(id="mat-w", trade_name="精製水", inci_name="Water")])
        assert catalog.find("Hamamelis Virginiana (Witch Hazel) Water") is None
        assert catalog.find("water").id == "mat-w"
        assert catalog.matching("Hamamelis Virginiana (Witch Hazel) Water") == []

    def test_snapshot_is_isolated(self, sample_materials):
        catalog = MaterialCatalog(sample_materials)
        sample_materials[0].trade_name = "changed"
        assert catalog.find("ヒアルロン酸Na") is not None
        assert len(catalog) == 2
        assert bool(MaterialCatalog()) is False

    def test_prompt_json_excludes_ids(self, sample_materials):
        data = json.loads(MaterialCatalog(sample_materials).to_prompt_json())
        assert data[0]["trade_name"] == "ヒアルロン酸Na"
        assert "id" not in data[0]


class TestMaterialParser:

    def test_parse_text(self):
        llm = FakeLLM(PARSED_MATERIAL)
        material = MaterialParser(llm).parse_text("ブルガリア産ダマスクローズの芳香蒸留水")

        assert isinstance(material, Material)
        assert material.id == ""
        assert material.trade_name == "ローズウォーター"
        assert material.benefits == ["保湿", "整肌"]
        assert material.cost_level == CostLevel.HIGH
        assert "ダマスクローズ" in llm.calls[0]["prompt"]

    def test_parse_text_rejects_empty(self):
        llm = FakeLLM()
        with pytest.raises(InputValidationError):
            MaterialParser(llm).parse_text(" ")
        assert llm.calls == []

    def test_parse_document(self):
        llm = FakeLLM(PARSED_MATERIAL)
        MaterialParser(llm).parse_document(b"%PDF-1.4 spec", "application/pdf", "spec.pdf")
        assert llm.calls[0]["attachments"][0].filename == "spec.pdf"

    def test_parse_url_fetches_page(self, monkeypatch):
        monkeypatch.setattr(
            "webapp.proposal.catalog.fetch_page_text",
            lambda url: ("ローズウォーター | サンプル香料", "INCI: Rosa Damascena Flower Water\n\n\n\n© 2024 Sample"),
        )
        llm = FakeLLM(PARSED_MATERIAL)
        material = MaterialParser(llm).parse_url("https://supplier.example.com/rose")

        assert material.inci_name == "Rosa Damascena Flower Water"
        prompt = llm.calls[0]["prompt"]
        assert "ローズウォーター | サンプル香料" in prompt
        assert "INCI: Rosa Damascena Flower Water" in prompt
        assert "© 2024" not in prompt

    def test_parse_url_unreachable_page(self, monkeypatch):
        monkeypatch.setattr("webapp.proposal.catalog.fetch_page_text", lambda url: ("", ""))
        llm = FakeLLM()
        with pytest.raises(ExtractionFailure):
            MaterialParser(llm).parse_url("https://supplier.example.com/missing")
        assert llm.calls == []

    def test_parse_url_rejects_relative(self):
        with pytest.raises(InputValidationError):
            MaterialParser(FakeLLM()).parse_url("supplier/rose")
