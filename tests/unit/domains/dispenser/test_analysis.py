"""End-to-end tests for analyze_intake over the bundled sample tables."""

from __future__ import annotations

import pytest

from vitadash.domains.dispenser.domain_logic.analysis import analyze_intake
from vitadash.domains.dispenser.domain_logic.recommendations import (
    REASON_CARDIOVASCULAR,
    REASON_LOW_INTAKE,
    PillBottleConfig,
)
from vitadash.domains.dispenser.domain_logic.requirements import UserProfile


@pytest.fixture
def run(bundled_catalog):
    def _analyze(food_text, **kwargs):
        return analyze_intake(
            food_text,
            bundled_catalog.load_food_catalog(),
            serving_defaults=bundled_catalog.load_serving_defaults(),
            rules=bundled_catalog.load_disease_rules(),
            **kwargs,
        )
    return _analyze


class TestAnalyzeIntake:
    def test_kimchi_stew_and_rice(self, run):
        analysis = run("kimchi stew: 300g, rice: 200g")

        assert analysis.totals.kcal == pytest.approx(380.0)
        assert analysis.requirement.target_kcal == 2000
        kcal = analysis.stats[0]
        assert (kcal.key, kcal.percent, kcal.status) == ("kcal", 19, "deficient")
        assert "kcal" in [s.key for s in analysis.deficient]
        assert analysis.recommendations == []

    def test_to_dict_shape(self, run):
        result = run("kimchi stew: 300g, rice: 200g, pizza").to_dict()
        assert result["foods"] == [
            {"name": "kimchi stew", "grams": 300.0},
            {"name": "rice", "grams": 200.0},
        ]
        assert result["unknown_foods"] == ["pizza"]
        assert result["totals"]["kcal"] == 380
        assert result["nutrients"][0]["percent"] == 19

    def test_profile_diseases_used_by_default(self, run):
        profile = UserProfile.from_dict({
            "age": 30, "sex": "male", "height_cm": 175, "weight_kg": 70,
            "activity_level": "moderate", "diseases": ["심혈관질환"],
        })
        config = PillBottleConfig.from_dict({"bottle1": "종합비타민", "bottle3": "오메가3"})
        analysis = run("bacon: 100g", profile=profile, config=config)

        assert analysis.requirement.recommended_kcal == 2556
        assert analysis.diseases == ["심혈관질환"]
        assert [r.food_entity for r in analysis.risks] == ["bacon"]
        reasons = {r.bottle_id: r.reason for r in analysis.recommendations}
        assert reasons == {1: REASON_LOW_INTAKE, 3: REASON_CARDIOVASCULAR}

    def test_explicit_diseases_override_profile(self, run):
        profile = UserProfile.from_dict({"diseases": ["심혈관질환"]})
        analysis = run("bacon: 100g", profile=profile, diseases=["암"])
        assert analysis.diseases == ["암"]
        assert [r.disease for r in analysis.risks] == ["cancer"]

    def test_serving_default_applied(self, run):
        analysis = run("김치찌개")
        assert analysis.entries[0].grams == 300
        assert analysis.totals.kcal == pytest.approx(135.0)

    def test_nutrition_log_fields(self, run):
        config = PillBottleConfig.from_dict({"bottle1": "종합비타민"})
        log = run("rice: 200g", config=config).to_nutrition_log(timestamp=42.0)

        assert log["timestamp"] == 42.0
        assert log["requirement_label"] == "2000 kcal (no_profile)"
        assert {"key": "kcal", "label": "Energy", "percent": 13} in log["deficient"]
        assert log["supplements"] == [{"pill_name": "종합비타민", "bottle_id": 1}]
