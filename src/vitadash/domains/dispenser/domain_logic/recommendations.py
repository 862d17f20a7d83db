"""Rule-based pill recommendations and dispense/refill command construction.

The recommendation cascade is evaluated per configured bottle; later rules
override the reason set by earlier ones, and the over-intake caution is
appended last regardless of which rule fired.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import yaml

from vitadash.domains.dispenser.domain_logic.disease_rules import (
    ANEMIA_KEYWORDS,
    BONE_KEYWORDS,
    CARDIOVASCULAR_KEYWORDS,
    has_condition,
)
from vitadash.domains.dispenser.domain_logic.models import BOTTLE_CAPACITY, BOTTLE_IDS
from vitadash.domains.dispenser.domain_logic.requirements import CalorieRequirement

logger = logging.getLogger(__name__)

PILL_PRESETS_PATH = Path(__file__).resolve().parent.parent / "data" / "pill_presets.yaml"

LOW_INTAKE_RATIO = 0.8
HIGH_INTAKE_RATIO = 1.2

REASON_DEFAULT = "1 tablet recommended based on the general daily allowance."
REASON_LOW_INTAKE = (
    "Today's total energy intake is below your requirement; "
    "1 tablet recommended to make up for missing nutrients."
)
REASON_CARDIOVASCULAR = (
    "A cardiovascular condition is selected; 1 omega-3 tablet recommended as support."
)
REASON_BONE = "A bone-health condition is selected; 1 vitamin D tablet recommended as support."
REASON_ANEMIA = "An anemia-related condition is selected; 1 iron tablet recommended as support."
CAUTION_HIGH_INTAKE = (
    " (Caution: today's energy intake is above your requirement; "
    "avoid taking extra supplements.)"
)

GENERAL_VITAMIN_KEYWORDS = ("종합비타민", "비타민", "vitamin")
OMEGA3_KEYWORDS = ("오메가", "omega")
VITAMIN_D_KEYWORDS = ("비타민 d", "vitamin d")
IRON_KEYWORDS = ("철분", "iron")


class InsufficientStockError(Exception):
    """Raised when a dispense command asks for more pills than a bottle holds."""

    def __init__(self, bottle_id: int, requested: int, remaining: int) -> None:
        super().__init__(
            f"Bottle {bottle_id}: requested {requested} pill(s), {remaining} remaining"
        )
        self.bottle_id = bottle_id
        self.requested = requested
        self.remaining = remaining


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class PillBottleConfig:
    """Which pill type is loaded in each bottle ('' = unset)."""

    bottles: dict[int, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PillBottleConfig:
        """Accepts ``{"bottle1": "..."}``, ``{"1": "..."}`` or ``{"bottles": {...}}``."""
        data = dict(data or {})
        if isinstance(data.get("bottles"), Mapping):
            data = dict(data["bottles"])
        bottles: dict[int, str] = {}
        for key, value in data.items():
            text = str(key).strip().lower().removeprefix("bottle")
            if not text.isdigit():
                continue
            bottles[int(text)] = str(value or "").strip()
        return cls(bottles=bottles)

    def to_dict(self) -> dict[str, str]:
        return {f"bottle{bid}": name for bid, name in sorted(self.bottles.items())}

    def configured(self) -> list[tuple[int, str]]:
        """(bottle_id, pill_name) for non-empty bottles, in id order."""
        return [(bid, name) for bid, name in sorted(self.bottles.items()) if name]

    def bottle_for(self, pill_name: str) -> int | None:
        for bid, name in self.configured():
            if name == pill_name:
                return bid
        return None


def load_pill_presets(path: Path | str | None = None) -> dict[str, Any]:
    """Selectable pill types and suggested bottle presets (bundled YAML by default)."""
    path = Path(path) if path else PILL_PRESETS_PATH
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {
        "pill_options": list(data.get("pill_options", [])),
        "presets": list(data.get("presets", [])),
    }


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PillRecommendation:
    bottle_id: int
    pill_name: str
    count: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "bottle_id": self.bottle_id,
            "pill_name": self.pill_name,
            "count": self.count,
            "reason": self.reason,
        }


def _name_has(name: str, keywords: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(kw in lowered for kw in keywords)


def intake_ratio(total_kcal: float | None, requirement: CalorieRequirement | None) -> float:
    """Intake / requirement; 1.0 when either side is zero or missing."""
    target = requirement.target_kcal if requirement is not None else 0
    if not total_kcal or total_kcal <= 0 or not target or target <= 0:
        return 1.0
    return total_kcal / target


def recommend_pills(
    total_kcal: float | None,
    requirement: CalorieRequirement | None,
    diseases: Iterable[str],
    config: PillBottleConfig | None,
) -> list[PillRecommendation]:
    """One recommendation per configured bottle; empty bottles are skipped."""
    if config is None:
        return []

    diseases = list(diseases or [])
    ratio = intake_ratio(total_kcal, requirement)
    heart = has_condition(diseases, CARDIOVASCULAR_KEYWORDS)
    bone = has_condition(diseases, BONE_KEYWORDS)
    anemia = has_condition(diseases, ANEMIA_KEYWORDS)

    recs: list[PillRecommendation] = []
    for bottle_id, name in config.configured():
        reason = REASON_DEFAULT
        if ratio < LOW_INTAKE_RATIO and _name_has(name, GENERAL_VITAMIN_KEYWORDS):
            reason = REASON_LOW_INTAKE
        if heart and _name_has(name, OMEGA3_KEYWORDS):
            reason = REASON_CARDIOVASCULAR
        if bone and _name_has(name, VITAMIN_D_KEYWORDS):
            reason = REASON_BONE
        if anemia and _name_has(name, IRON_KEYWORDS):
            reason = REASON_ANEMIA
        if ratio > HIGH_INTAKE_RATIO:
            reason += CAUTION_HIGH_INTAKE
        recs.append(PillRecommendation(bottle_id, name, 1, reason))
    return recs


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DispenseCommand:
    bottle_id: int
    count: int
    kind: str  # 'dispense' | 'refill'
    requested_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "bottle_id": self.bottle_id,
            "count": self.count,
            "kind": self.kind,
            "requested_at": self.requested_at,
        }


def _check_bottle(bottle_id: int) -> None:
    if bottle_id not in BOTTLE_IDS:
        raise ValueError(f"Unknown bottle id: {bottle_id}")


def build_dispense_command(
    bottle_id: int,
    count: int,
    remaining: int | None = None,
    requested_at: float | None = None,
) -> DispenseCommand:
    """Command to drop ``count`` pills from a bottle.

    Raises:
        ValueError: Unknown bottle or non-positive count.
        InsufficientStockError: ``count`` exceeds the known ``remaining`` stock.
    """
    _check_bottle(bottle_id)
    if count <= 0:
        raise ValueError("count must be positive")
    if remaining is not None and count > remaining:
        raise InsufficientStockError(bottle_id, count, remaining)
    return DispenseCommand(
        bottle_id=bottle_id,
        count=count,
        kind="dispense",
        requested_at=requested_at if requested_at is not None else time.time(),
    )


def build_refill_command(
    bottle_id: int, remaining: int, requested_at: float | None = None
) -> DispenseCommand | None:
    """Command topping a bottle up to capacity; None when already full."""
    _check_bottle(bottle_id)
    missing = BOTTLE_CAPACITY - max(0, remaining)
    if missing <= 0:
        return None
    return DispenseCommand(
        bottle_id=bottle_id,
        count=missing,
        kind="refill",
        requested_at=requested_at if requested_at is not None else time.time(),
    )


@dataclass
class DispenseRequest:
    """Batched dispense of all recommended pills, as submitted from an analysis."""

    items: list[PillRecommendation]
    total_kcal: float
    recommended_kcal: int
    selected_diseases: list[str]
    created_at: float
    status: str = "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at,
            "status": self.status,
            "total_kcal": self.total_kcal,
            "recommended_kcal": self.recommended_kcal,
            "selected_diseases": list(self.selected_diseases),
            "items": [
                {"bottle_id": r.bottle_id, "pill_name": r.pill_name, "count": r.count}
                for r in self.items
            ],
        }


def build_dispense_request(
    recommendations: Sequence[PillRecommendation],
    requirement: CalorieRequirement,
    total_kcal: float,
    diseases: Iterable[str],
    created_at: float | None = None,
    pill_counts: Mapping[int, int] | None = None,
) -> tuple[DispenseRequest, list[PillRecommendation]]:
    """Build the batched request; bottles without enough stock are left out.

    Returns:
        (request, insufficient). ``insufficient`` is empty when
        ``pill_counts`` is unknown.
    """
    items: list[PillRecommendation] = []
    insufficient: list[PillRecommendation] = []
    for rec in recommendations:
        if pill_counts is not None and pill_counts.get(rec.bottle_id, 0) < rec.count:
            insufficient.append(rec)
            continue
        items.append(rec)
    if insufficient:
        logger.info(
            "Skipping %d bottle(s) with insufficient stock: %s",
            len(insufficient),
            [r.bottle_id for r in insufficient],
        )
    request = DispenseRequest(
        items=items,
        total_kcal=total_kcal,
        recommended_kcal=requirement.target_kcal,
        selected_diseases=sorted(set(diseases)),
        created_at=created_at if created_at is not None else time.time(),
    )
    return request, insufficient
