"""User profile and daily calorie requirement estimation.

Two paths, chosen by profile completeness:
    formula:  Mifflin-St Jeor BMR x activity factor
    fallback: flat sex-based average when the profile is absent or incomplete
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any

from vitadash.domains.dispenser.domain_logic.models import round_half_up


class Sex(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class ActivityLevel(str, enum.Enum):
    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


ACTIVITY_FACTORS: dict[ActivityLevel | None, float] = {
    None: 1.2,
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHT: 1.375,
    ActivityLevel.MODERATE: 1.55,
    ActivityLevel.ACTIVE: 1.725,
    ActivityLevel.VERY_ACTIVE: 1.9,
}

FALLBACK_KCAL: dict[Sex, int] = {
    Sex.FEMALE: 1800,
    Sex.MALE: 2200,
    Sex.OTHER: 2000,
    Sex.UNKNOWN: 2000,
}
DEFAULT_KCAL = 2000

RATIONALE_NO_PROFILE = "No profile saved; using the default daily calorie estimate."
RATIONALE_INCOMPLETE = (
    "Profile is missing age, sex, height or weight; "
    "using the sex-based average daily calorie estimate."
)
RATIONALE_FORMULA = (
    "Estimated daily energy need from the Mifflin-St Jeor equation "
    "and your activity level."
)


def _positive_number(val: Any) -> float | None:
    """Return a positive finite float, or None for missing/zero/garbage input."""
    if val is None or isinstance(val, bool):
        return None
    try:
        number = float(val)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _enum_or(enum_cls, val: Any, default):
    if isinstance(val, enum_cls):
        return val
    if not val:
        return default
    try:
        return enum_cls(str(val).strip().lower())
    except ValueError:
        return default


@dataclass
class UserProfile:
    """Optional per-user profile. Every field may be missing."""

    name: str = ""
    age: float | None = None
    sex: Sex = Sex.UNKNOWN
    height_cm: float | None = None
    weight_kg: float | None = None
    activity_level: ActivityLevel | None = None
    diseases: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> UserProfile:
        """Build a profile from stored or user-submitted data.

        Accepts both camelCase (``heightCm``) and snake_case keys. Garbage
        values degrade to "missing" rather than raising.
        """
        data = data or {}
        diseases = data.get("diseases") or []
        if isinstance(diseases, str):
            diseases = [diseases]
        return cls(
            name=str(data.get("name") or ""),
            age=_positive_number(data.get("age")),
            sex=_enum_or(Sex, data.get("sex"), Sex.UNKNOWN),
            height_cm=_positive_number(data.get("height_cm", data.get("heightCm"))),
            weight_kg=_positive_number(data.get("weight_kg", data.get("weightKg"))),
            activity_level=_enum_or(
                ActivityLevel,
                data.get("activity_level", data.get("activityLevel")),
                None,
            ),
            diseases=sorted({str(d).strip() for d in diseases if str(d).strip()}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "age": self.age,
            "sex": self.sex.value,
            "height_cm": self.height_cm,
            "weight_kg": self.weight_kg,
            "activity_level": self.activity_level.value if self.activity_level else None,
            "diseases": list(self.diseases),
        }

    def is_complete(self) -> bool:
        measurements = (self.age, self.height_cm, self.weight_kg)
        return (
            all(_positive_number(m) is not None for m in measurements)
            and self.sex is not Sex.UNKNOWN
        )


@dataclass
class CalorieRequirement:
    """Result of the requirement estimator."""

    recommended_kcal: int | None
    basal_metabolic_rate: int | None
    activity_factor: float
    rationale: str
    fallback_kcal: int | None
    basis: str  # 'no_profile' | 'incomplete_profile' | 'formula'

    @property
    def target_kcal(self) -> int:
        """Requirement used for ratios: recommended, else fallback, else 2000."""
        return self.recommended_kcal or self.fallback_kcal or DEFAULT_KCAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommended_kcal": self.recommended_kcal,
            "basal_metabolic_rate": self.basal_metabolic_rate,
            "activity_factor": self.activity_factor,
            "rationale": self.rationale,
            "fallback_kcal": self.fallback_kcal,
            "basis": self.basis,
        }


def mifflin_st_jeor(weight_kg: float, height_cm: float, age: float, sex: Sex) -> float:
    """Unrounded basal metabolic rate (kcal/day)."""
    offset = 5 if sex is Sex.MALE else (-161 if sex is Sex.FEMALE else 0)
    return 10 * weight_kg + 6.25 * height_cm - 5 * age + offset


def estimate_requirement(profile: UserProfile | None) -> CalorieRequirement:
    """Estimate daily calorie needs, falling back gracefully on missing data."""
    if profile is None:
        return CalorieRequirement(
            recommended_kcal=DEFAULT_KCAL,
            basal_metabolic_rate=None,
            activity_factor=ACTIVITY_FACTORS[None],
            rationale=RATIONALE_NO_PROFILE,
            fallback_kcal=DEFAULT_KCAL,
            basis="no_profile",
        )

    factor = ACTIVITY_FACTORS.get(profile.activity_level, ACTIVITY_FACTORS[None])

    if not profile.is_complete():
        fallback = FALLBACK_KCAL[profile.sex]
        return CalorieRequirement(
            recommended_kcal=fallback,
            basal_metabolic_rate=None,
            activity_factor=factor,
            rationale=RATIONALE_INCOMPLETE,
            fallback_kcal=fallback,
            basis="incomplete_profile",
        )

    bmr = mifflin_st_jeor(profile.weight_kg, profile.height_cm, profile.age, profile.sex)
    return CalorieRequirement(
        recommended_kcal=round_half_up(bmr * factor),
        basal_metabolic_rate=round_half_up(bmr),
        activity_factor=factor,
        rationale=RATIONALE_FORMULA,
        fallback_kcal=None,
        basis="formula",
    )
