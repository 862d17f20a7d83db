"""Tests for disease-food risk matching and the disease picker helpers."""

from __future__ import annotations

import pytest

from vitadash.domains.dispenser.domain_logic.disease_rules import (
    CARDIOVASCULAR_KEYWORDS,
    DiseaseCategory,
    DiseaseRule,
    categorize_diseases,
    disease_options,
    has_condition,
    load_disease_categories,
    match_risks,
    parse_flag,
    split_food_tokens,
    to_english_label,
)


@pytest.fixture
def rules(bundled_catalog):
    return bundled_catalog.load_disease_rules()


class TestParseFlag:
    @pytest.mark.parametrize(
        "value, expected",
        [("1.0", True), ("0.0", False), ("true", True), ("", None), (None, None),
         (1, True), (0, False), ("maybe", None)],
    )
    def test_values(self, value, expected):
        assert parse_flag(value) is expected


class TestDiseaseRule:
    def test_from_row_alternate_layout(self):
        rule = DiseaseRule.from_row({
            "value": "obesity", "label": "비만", "food_entity": "cola",
            "sentence": "", "is_cause": "1.0",
        })
        assert rule.disease == "obesity"
        assert rule.is_cause is True
        assert rule.is_treat is None

    def test_risk_factor_by_flag_or_sentence(self):
        assert DiseaseRule("x", is_cause=True).is_risk_factor()
        assert DiseaseRule("x", sentence="Sugar may INCREASE weight").is_risk_factor()
        assert DiseaseRule("x", sentence="Higher fracture risk").is_risk_factor()
        assert not DiseaseRule("x", sentence="Linked to lower weight", is_cause=False).is_risk_factor()


class TestMatchRisks:
    def test_korean_label_selects_rules(self, rules):
        risks = match_risks("라면, kimchi stew: 300g", ["고혈압"], rules)
        assert [r.food_entity for r in risks] == ["라면", "kimchi stew"]
        assert all(r.disease == "hypertension" for r in risks)

    def test_english_value_selects_rules(self, rules):
        risks = match_risks("cola", ["Obesity"], rules)
        assert [r.food_entity for r in risks] == ["cola"]

    def test_token_is_substring_of_food_entity(self, rules):
        risks = match_risks("chicken", ["비만"], rules)
        assert [r.food_entity for r in risks] == ["fried chicken"]

    def test_protective_rule_not_reported(self, rules):
        assert match_risks("spinach", ["비만"], rules) == []
        assert match_risks("salmon", ["심혈관질환"], rules) == []

    def test_keeps_rule_table_order(self, rules):
        risks = match_risks("cola, bacon", ["비만", "당뇨병", "고혈압"], rules)
        assert [(r.disease, r.food_entity) for r in risks] == [
            ("obesity", "cola"),
            ("hypertension", "bacon"),
            ("diabetes mellitus", "cola"),
        ]

    @pytest.mark.parametrize(
        "foods, diseases",
        [("", ["비만"]), ("cola", []), (" , ", ["비만"])],
    )
    def test_empty_inputs(self, rules, foods, diseases):
        assert match_risks(foods, diseases, rules) == []

    def test_no_rules(self):
        assert match_risks("cola", ["비만"], []) == []


class TestHelpers:
    def test_split_food_tokens(self):
        assert split_food_tokens("Kimchi Stew: 300g,\nRice 200 g, ") == ["kimchi stew", "rice"]

    def test_to_english_label(self):
        assert to_english_label("고혈압") == "hypertension"
        assert to_english_label(" asthma ") == "asthma"

    def test_disease_options(self, rules):
        options = disease_options(rules)
        assert [o["value"] for o in options] == [
            "cancer",
            "cardiovascular disease",
            "diabetes mellitus",
            "hypertension",
            "obesity",
            "osteoporosis",
        ]
        assert options[0] == {"value": "cancer", "label": "암"}

    def test_has_condition(self):
        assert has_condition(["심혈관질환"], CARDIOVASCULAR_KEYWORDS)
        assert has_condition(["Cardiovascular disease"], CARDIOVASCULAR_KEYWORDS)
        assert not has_condition(["비만", None], CARDIOVASCULAR_KEYWORDS)


class TestCategories:
    def test_bundled_categories_load(self):
        names = [c.name for c in load_disease_categories()]
        assert names[0] == "cardiovascular"
        assert "digestive_kidney" in names

    def test_categorize_bundled(self):
        grouped = categorize_diseases(["고혈압", "비만", "암", "요로결석", "unknown", "비만"])
        assert grouped == [
            {"name": "cardiovascular", "diseases": ["고혈압"]},
            {"name": "metabolic", "diseases": ["비만"]},
            {"name": "cancer", "diseases": ["암"]},
            {"name": "digestive_kidney", "diseases": ["요로결석"]},
            {"name": "other", "diseases": ["unknown"]},
        ]

    def test_first_matching_category_wins(self):
        categories = [
            DiseaseCategory("a", ("heart",)),
            DiseaseCategory("b", ("heart", "lung")),
        ]
        grouped = categorize_diseases(["heart failure", "lung cancer"], categories)
        assert grouped == [
            {"name": "a", "diseases": ["heart failure"]},
            {"name": "b", "diseases": ["lung cancer"]},
        ]
