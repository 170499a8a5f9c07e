"""Tests for requirement, material and proposal schemas."""

import pytest
from pydantic import ValidationError

from schemas.material import CostLevel, Material
from schemas.proposal import GeneratedContent, ProposalContent, ScoredProposal
from schemas.requirement import (
    FIELD_LABELS,
    ListField,
    RequirementProfile,
    TextField,
    needs_review,
)

from conftest import detail_payload


class TestConfidenceFields:

    def test_null_value_becomes_empty(self):
        assert TextField(value=None).value == ""
        assert ListField(value=None).value == []

    def test_list_field_splits_delimited_string(self):
        field = ListField(value="保湿、美白, エイジングケア")
        assert field.value == ["保湿", "美白", "エイジングケア"]

    def test_confidence_is_clamped(self):
        assert TextField(value="x", confidence=1.7).confidence == 1.0
        assert TextField(value="x", confidence=-2).confidence == 0.0

    def test_empty_value_never_keeps_confidence(self):
        assert TextField(value="", confidence=0.9).confidence == 0.0

    @pytest.mark.parametrize("confidence,expected", [
        (None, False),
        (0.0, True),
        (0.5, True),
        (0.79, True),
        (0.8, False),
        (1.0, False),
    ])
    def test_needs_review_threshold(self, confidence, expected):
        assert needs_review(TextField(value="化粧水", confidence=confidence)) is expected


class TestRequirementProfile:

    def test_all_fields_present_by_default(self):
        profile = RequirementProfile()
        assert set(profile.fields()) == set(FIELD_LABELS)
        assert profile.purpose_goals.value == []
        assert profile.product_type.value == ""

    def test_scalar_and_null_fields_are_wrapped(self):
        profile = RequirementProfile.model_validate({"product_type": "美容液", "markets": None})
        assert profile.product_type.value == "美容液"
        assert profile.markets.value == ""

    def test_revise_returns_new_profile(self, sample_profile):
        revised = sample_profile.revise("budget_band", "1個あたり300円以内")
        assert revised.budget_band.value == "1個あたり300円以内"
        assert revised.budget_band.confidence == 1.0
        assert sample_profile.budget_band.value == ""

    def test_revise_clearing_a_field_zeroes_confidence(self, sample_profile):
        revised = sample_profile.revise("target_audience", "")
        assert revised.target_audience.confidence == 0.0

    def test_revise_list_field(self, sample_profile):
        revised = sample_profile.revise("certifications", "COSMOS、Vegan")
        assert revised.certifications.value == ["COSMOS", "Vegan"]

    def test_revise_unknown_field(self, sample_profile):
        with pytest.raises(KeyError):
            sample_profile.revise("color", "red")

    def test_review_fields(self, sample_profile):
        # budget_band is empty at 0.0, lot_size was inferred at 0.6
        assert set(sample_profile.review_fields()) >= {"lot_size", "budget_band"}
        assert "product_type" not in sample_profile.review_fields()

    def test_prompt_payload_excludes_research(self, sample_profile, sample_research):
        payload = sample_profile.with_research(sample_research).prompt_payload()
        assert "client_research" not in payload
        assert payload["product_type"]["value"] == "化粧水"


class TestMaterial:

    @pytest.mark.parametrize("raw,expected", [
        ("high", CostLevel.HIGH),
        ("Low", CostLevel.LOW),
        ("中", CostLevel.MEDIUM),
        ("", CostLevel.MEDIUM),
        (None, CostLevel.MEDIUM),
    ])
    def test_cost_level_parsing(self, raw, expected):
        assert Material(trade_name="x", cost_level=raw).cost_level == expected

    def test_cost_level_is_ordinal(self):
        assert CostLevel.LOW < CostLevel.MEDIUM < CostLevel.HIGH
        assert max([CostLevel.MEDIUM, CostLevel.HIGH, CostLevel.LOW]) == CostLevel.HIGH

    def test_matches_trade_or_inci_name(self, sample_materials):
        hyaluronic = sample_materials[0]
        assert hyaluronic.matches("高配合のヒアルロン酸Naを使用")
        assert hyaluronic.matches("contains SODIUM HYALURONATE")
        assert not hyaluronic.matches("グリセリン")

    def test_generic_name_is_not_the_tail_of_another_ingredient(self):
        water = Material(trade_name="精製水", inci_name="Water")
        glycerin = Material(trade_name="濃グリセリン", inci_name="Glycerin")
        inci_list = "Hamamelis Virginiana (Witch Hazel) Water, Polyglyceryl-10 Laurate"
        assert not water.matches(inci_list)
        assert not glycerin.matches(inci_list)
        assert water.matches("Water, Glycerin, Butylene Glycol")
        assert glycerin.matches("Water, Glycerin, Butylene Glycol")
        assert glycerin.matches("保湿成分としてGlycerinを配合")

    def test_multi_word_name_needs_word_boundaries(self):
        ceramide = Material(inci_name="Ceramide NP")
        assert ceramide.matches("contains Ceramide NP and squalane")
        assert not ceramide.matches("Ceramide NPX complex")

    def test_certifications_from_string(self):
        material = Material(trade_name="x", certifications="COSMOS, Ecocert")
        assert material.certifications == ["COSMOS", "Ecocert"]
        assert material.is_organic_certified


class TestProposalModels:

    def test_score_is_clamped(self):
        assert ScoredProposal(score=130).score == 100.0
        assert ScoredProposal(score=-5).score == 0.0
        assert ScoredProposal(score="n/a").score == 0.0

    def test_generated_content_requires_drafts(self):
        payload = detail_payload()
        payload["email_drafts"]["casual"] = "  "
        with pytest.raises(ValidationError):
            GeneratedContent.model_validate(payload)

    def test_generated_content_requires_summary(self):
        payload = detail_payload()
        payload["executive_summary"] = ""
        with pytest.raises(ValidationError):
            GeneratedContent.model_validate(payload)

    def test_generated_content_requires_distinct_drafts(self):
        payload = detail_payload()
        same = "山田様\n\nご提案をお送りします。"
        payload["email_drafts"] = {"standard": same, "formal": same, "casual": "山田さん\n\nご提案です。"}
        with pytest.raises(ValidationError):
            GeneratedContent.model_validate(payload)

        payload["email_drafts"]["formal"] = "山田様\r\n\r\nご提案を  お送りします。"
        with pytest.raises(ValidationError):
            GeneratedContent.model_validate(payload)

    def test_null_sections_become_empty(self):
        payload = detail_payload()
        payload["package_proposals"] = None
        payload["cost_range"] = None
        content = ProposalContent.model_validate(payload)
        assert content.package_proposals == []
        assert content.cost_range.total == ""
