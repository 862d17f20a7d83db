"""Tests for the daily calorie requirement estimator."""

from __future__ import annotations

import pytest

from vitadash.domains.dispenser.domain_logic.models import round_half_up
from vitadash.domains.dispenser.domain_logic.requirements import (
    ActivityLevel,
    Sex,
    UserProfile,
    estimate_requirement,
    mifflin_st_jeor,
)


class TestRoundHalfUp:
    @pytest.mark.parametrize("value, expected", [(0.5, 1), (1.5, 2), (2.5, 3), (1648.75, 1649), (2.49, 2)])
    def test_half_goes_up(self, value, expected):
        assert round_half_up(value) == expected


class TestUserProfile:
    def test_from_camel_case(self):
        profile = UserProfile.from_dict({
            "age": 30, "sex": "male", "heightCm": 175, "weightKg": 70,
            "activityLevel": "moderate",
        })
        assert profile.height_cm == 175
        assert profile.weight_kg == 70
        assert profile.sex is Sex.MALE
        assert profile.activity_level is ActivityLevel.MODERATE
        assert profile.is_complete()

    def test_garbage_degrades_to_missing(self):
        profile = UserProfile.from_dict({
            "age": "old", "sex": "robot", "height_cm": -5, "weight_kg": 0,
            "activity_level": "extreme",
        })
        assert profile.age is None
        assert profile.sex is Sex.UNKNOWN
        assert profile.height_cm is None
        assert profile.weight_kg is None
        assert profile.activity_level is None
        assert not profile.is_complete()

    def test_diseases_deduplicated_and_sorted(self):
        profile = UserProfile.from_dict({"diseases": ["고혈압", " 비만", "고혈압", ""]})
        assert profile.diseases == ["고혈압", "비만"]

    def test_to_dict_round_trip(self):
        data = {
            "name": "Kim", "age": 41.0, "sex": "female", "height_cm": 160.0,
            "weight_kg": 55.0, "activity_level": "light", "diseases": ["osteoporosis"],
        }
        assert UserProfile.from_dict(data).to_dict() == data


class TestFallback:
    def test_no_profile(self):
        req = estimate_requirement(None)
        assert req.recommended_kcal == 2000
        assert req.fallback_kcal == 2000
        assert req.basal_metabolic_rate is None
        assert req.basis == "no_profile"
        assert req.target_kcal == 2000

    @pytest.mark.parametrize(
        "sex, expected",
        [("female", 1800), ("male", 2200), ("other", 2000), (None, 2000)],
    )
    def test_incomplete_profile_uses_sex_average(self, sex, expected):
        req = estimate_requirement(UserProfile.from_dict({"age": 30, "sex": sex, "weight_kg": 60}))
        assert req.recommended_kcal == expected
        assert req.fallback_kcal == expected
        assert req.basis == "incomplete_profile"

    def test_zero_height_counts_as_missing(self):
        profile = UserProfile.from_dict(
            {"age": 30, "sex": "female", "height_cm": 0, "weight_kg": 60}
        )
        assert estimate_requirement(profile).recommended_kcal == 1800

    def test_unknown_sex_with_measurements_is_incomplete(self):
        profile = UserProfile.from_dict({"age": 30, "height_cm": 170, "weight_kg": 60})
        req = estimate_requirement(profile)
        assert req.basis == "incomplete_profile"
        assert req.recommended_kcal == 2000

    @pytest.mark.parametrize("field", ["age", "height_cm", "weight_kg"])
    @pytest.mark.parametrize("value", ["inf", "1e400", float("inf"), "-inf", "nan"])
    def test_non_finite_measurement_counts_as_missing(self, field, value):
        data = {"age": 30, "sex": "male", "height_cm": 175, "weight_kg": 70, field: value}
        profile = UserProfile.from_dict(data)
        assert getattr(profile, field) is None
        req = estimate_requirement(profile)
        assert req.basis == "incomplete_profile"
        assert req.recommended_kcal == 2200

    def test_directly_built_infinite_profile_falls_back(self):
        profile = UserProfile(age=float("inf"), sex=Sex.FEMALE, height_cm=160, weight_kg=55)
        assert not profile.is_complete()
        assert estimate_requirement(profile).recommended_kcal == 1800

    def test_rationales_differ(self):
        none = estimate_requirement(None).rationale
        partial = estimate_requirement(UserProfile(sex=Sex.MALE)).rationale
        assert none != partial


class TestFormula:
    def test_male_moderate(self):
        profile = UserProfile.from_dict({
            "age": 30, "sex": "male", "heightCm": 175, "weightKg": 70,
            "activityLevel": "moderate",
        })
        req = estimate_requirement(profile)
        assert req.basal_metabolic_rate == 1649
        assert req.recommended_kcal == 2556
        assert req.activity_factor == 1.55
        assert req.fallback_kcal is None
        assert req.basis == "formula"

    def test_female_offset(self):
        assert mifflin_st_jeor(60, 165, 30, Sex.FEMALE) == pytest.approx(1320.25)

    def test_other_sex_has_no_offset(self):
        assert mifflin_st_jeor(70, 175, 30, Sex.OTHER) == pytest.approx(1643.75)

    def test_unset_activity_is_sedentary(self):
        profile = UserProfile.from_dict(
            {"age": 30, "sex": "male", "height_cm": 175, "weight_kg": 70}
        )
        req = estimate_requirement(profile)
        assert req.activity_factor == 1.2
        assert req.recommended_kcal == round_half_up(1648.75 * 1.2)
