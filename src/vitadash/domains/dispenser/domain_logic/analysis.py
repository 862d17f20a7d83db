"""End-to-end intake analysis: food text -> totals, comparison, risks, pills."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from vitadash.domains.dispenser.domain_logic.disease_rules import DiseaseRule, match_risks
from vitadash.domains.dispenser.domain_logic.nutrition import (
    FoodIntakeEntry,
    FoodRecord,
    NutrientStat,
    NutrientTotals,
    ServingDefault,
    build_nutrient_stats,
    compute_totals,
    parse_food_entries,
    requirement_targets,
)
from vitadash.domains.dispenser.domain_logic.recommendations import (
    PillBottleConfig,
    PillRecommendation,
    recommend_pills,
)
from vitadash.domains.dispenser.domain_logic.requirements import (
    CalorieRequirement,
    UserProfile,
    estimate_requirement,
)


@dataclass
class IntakeAnalysis:
    entries: list[FoodIntakeEntry]
    unknown_foods: list[str]
    totals: NutrientTotals
    requirement: CalorieRequirement
    stats: list[NutrientStat]
    risks: list[DiseaseRule]
    recommendations: list[PillRecommendation]
    diseases: list[str] = field(default_factory=list)

    @property
    def deficient(self) -> list[NutrientStat]:
        return [s for s in self.stats if s.status == "deficient"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "foods": [{"name": e.name, "grams": e.grams} for e in self.entries],
            "unknown_foods": list(self.unknown_foods),
            "totals": self.totals.rounded(),
            "requirement": self.requirement.to_dict(),
            "nutrients": [s.to_dict() for s in self.stats],
            "risks": [r.to_dict() for r in self.risks],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "selected_diseases": list(self.diseases),
        }

    def to_nutrition_log(self, timestamp: float | None = None) -> dict[str, Any]:
        """Fields of the saved-analysis record."""
        return {
            "timestamp": timestamp if timestamp is not None else time.time(),
            "requirement_label": f"{self.requirement.target_kcal} kcal ({self.requirement.basis})",
            "deficient": [
                {"key": s.key, "label": s.label, "percent": s.percent}
                for s in self.deficient
            ],
            "supplements": [
                {"pill_name": r.pill_name, "bottle_id": r.bottle_id}
                for r in self.recommendations
            ],
        }


def analyze_intake(
    food_text: str,
    catalog: Sequence[FoodRecord],
    *,
    serving_defaults: Sequence[ServingDefault] = (),
    rules: Sequence[DiseaseRule] = (),
    profile: UserProfile | None = None,
    diseases: Iterable[str] | None = None,
    config: PillBottleConfig | None = None,
) -> IntakeAnalysis:
    """Run every analysis step for one meal description.

    ``diseases`` defaults to the profile's saved diseases.
    """
    if diseases is None:
        diseases = profile.diseases if profile is not None else []
    selected = sorted({d.strip() for d in diseases if d and d.strip()})

    entries, unknown = parse_food_entries(food_text, catalog, serving_defaults)
    totals = compute_totals(entries)
    requirement = estimate_requirement(profile)
    stats = build_nutrient_stats(requirement_targets(requirement), totals)
    return IntakeAnalysis(
        entries=entries,
        unknown_foods=unknown,
        totals=totals,
        requirement=requirement,
        stats=stats,
        risks=match_risks(food_text, selected, rules),
        recommendations=recommend_pills(totals.kcal, requirement, selected, config),
        diseases=selected,
    )
