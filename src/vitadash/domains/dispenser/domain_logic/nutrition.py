"""Nutrient extraction, intake aggregation and requirement comparison.

Food records are open key/value maps whose column names vary by data source
(English, abbreviated, Korean). Every nutrient read goes through
``extract_nutrient``; nothing else indexes a food record directly.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from vitadash.domains.dispenser.domain_logic.models import round_half_up
from vitadash.domains.dispenser.domain_logic.requirements import CalorieRequirement

logger = logging.getLogger(__name__)

FoodRecord = Mapping[str, Any]

NUTRIENT_KEYS = ("kcal", "carb", "protein", "fat")

# Ordered most -> least canonical.
NUTRIENT_CANDIDATES: dict[str, tuple[str, ...]] = {
    "kcal": (
        "ENERGY_KCAL", "energy_kcal", "KCAL", "kcal", "calories", "Calories",
        "ENERC_KCAL", "열량(kcal)", "열량", "에너지(kcal)", "에너지", "ENERGY",
        "calories_kcal",
    ),
    "carb": (
        "carbs", "carbohydrate", "carbohydrate_g", "탄수화물(g)", "탄수화물",
        "carb_g", "CHO_G", "cho",
    ),
    "protein": (
        "protein", "protein_g", "단백질(g)", "단백질", "PROT_G", "prot",
    ),
    "fat": (
        "fat", "lipid", "fat_g", "지방(g)", "지방", "FAT_G",
    ),
}

FOOD_NAME_CANDIDATES = (
    "FOOD_NM_KR", "FOOD_NAME", "식품명", "식품명(국문)", "음식명", "FoodName", "name",
)

NUTRIENT_LABELS: dict[str, tuple[str, str]] = {
    "kcal": ("Energy", "kcal"),
    "carb": ("Carbohydrate", "g"),
    "protein": ("Protein", "g"),
    "fat": ("Fat", "g"),
}

# Daily macro targets used alongside the calorie requirement.
DEFAULT_MACRO_TARGETS = {"carb": 300.0, "protein": 55.0, "fat": 70.0}

# Classification band (percent of requirement).
DEFICIENT_BELOW = 80
EXCESS_ABOVE = 120

DEFAULT_GRAMS = 100.0


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def parse_number(val: Any) -> float | None:
    """Parse a numeric cell; None for booleans, blanks and garbage."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        number = float(val)
    else:
        text = str(val).strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def _lookup(record: FoodRecord, key: str, folded: dict[str, Any]) -> Any:
    if key in record:
        return record[key]
    return folded.get(key.lower())


def _fold_keys(record: FoodRecord) -> dict[str, Any]:
    folded: dict[str, Any] = {}
    for key, value in record.items():
        folded.setdefault(str(key).strip().lower(), value)
    return folded


def extract_nutrient(record: FoodRecord, nutrient: str) -> float:
    """Best-effort per-100g value of ``nutrient`` in ``record`` (0.0 if absent)."""
    candidates = NUTRIENT_CANDIDATES.get(nutrient)
    if not candidates or not record:
        return 0.0
    folded = _fold_keys(record)
    for key in candidates:
        number = parse_number(_lookup(record, key, folded))
        if number is not None:
            return number
    return 0.0


def get_food_name(record: FoodRecord) -> str:
    """Display name of a food record, or '' when none can be found."""
    if not record:
        return ""
    for key in FOOD_NAME_CANDIDATES:
        val = record.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    for val in record.values():
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NutrientTotals:
    """Unrounded nutrient totals. Round only through ``rounded()``."""

    kcal: float = 0.0
    carb: float = 0.0
    protein: float = 0.0
    fat: float = 0.0

    def get(self, key: str) -> float:
        return getattr(self, key)

    def rounded(self) -> dict[str, float]:
        """Presentation values: kcal to integer, macros to one decimal."""
        return {
            "kcal": round_half_up(self.kcal),
            "carb": round_half_up(self.carb * 10) / 10,
            "protein": round_half_up(self.protein * 10) / 10,
            "fat": round_half_up(self.fat * 10) / 10,
        }


@dataclass
class FoodIntakeEntry:
    food: dict[str, Any]
    grams: float = DEFAULT_GRAMS

    @property
    def name(self) -> str:
        return get_food_name(self.food)


def _grams(val: Any) -> float:
    number = parse_number(val)
    if number is None or number < 0:
        return 0.0
    return number


def compute_totals(entries: Iterable[FoodIntakeEntry]) -> NutrientTotals:
    """Sum per-100g nutrients scaled by consumed grams."""
    sums = dict.fromkeys(NUTRIENT_KEYS, 0.0)
    for entry in entries:
        scale = _grams(entry.grams) / 100
        for key in NUTRIENT_KEYS:
            sums[key] += extract_nutrient(entry.food, key) * scale
    return NutrientTotals(**sums)


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NutrientStat:
    key: str
    label: str
    unit: str
    required: float
    intake: float
    percent: int
    status: str  # 'deficient' | 'adequate' | 'excess'

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "unit": self.unit,
            "required": self.required,
            "intake": round(self.intake, 1),
            "percent": self.percent,
            "status": self.status,
        }


def classify_percent(percent: float) -> str:
    if percent < DEFICIENT_BELOW:
        return "deficient"
    if percent <= EXCESS_ABOVE:
        return "adequate"
    return "excess"


def requirement_targets(requirement: CalorieRequirement) -> NutrientTotals:
    """Daily requirement tuple: estimated kcal plus the default macro targets."""
    return NutrientTotals(kcal=float(requirement.target_kcal), **DEFAULT_MACRO_TARGETS)


def build_nutrient_stats(
    required: NutrientTotals, intake: NutrientTotals
) -> list[NutrientStat]:
    """Percent-of-requirement statistics for each nutrient."""
    stats: list[NutrientStat] = []
    for key in NUTRIENT_KEYS:
        need = required.get(key)
        have = intake.get(key)
        percent = round_half_up(have / need * 100) if need > 0 else 0
        label, unit = NUTRIENT_LABELS[key]
        stats.append(NutrientStat(
            key=key,
            label=label,
            unit=unit,
            required=need,
            intake=have,
            percent=percent,
            status=classify_percent(percent),
        ))
    return stats


# ---------------------------------------------------------------------------
# Catalog helpers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServingDefault:
    """Typical single-serving weight for foods whose name contains ``keyword``."""

    category: str
    keyword: str
    grams: float


def estimate_serving_grams(
    record: FoodRecord, serving_defaults: Sequence[ServingDefault]
) -> float | None:
    """Serving weight of the first default whose keyword appears in the food name."""
    if not serving_defaults:
        return None
    name = get_food_name(record).lower()
    if not name:
        return None
    for row in serving_defaults:
        if row.keyword and row.keyword.lower() in name:
            return row.grams
    return None


def search_foods(
    catalog: Sequence[FoodRecord], query: str, limit: int = 20
) -> list[FoodRecord]:
    """Case-insensitive substring search over food names."""
    q = (query or "").strip().lower()
    if not q:
        return []
    results = []
    for row in catalog:
        name = get_food_name(row)
        if name and q in name.lower():
            results.append(row)
            if len(results) >= limit:
                break
    return results


_QUANTITY_RE = re.compile(
    r"^(?P<name>.*?)(?:\s*[:=]\s*|\s+)(?P<grams>\d+(?:[.,]\d+)?)\s*(?:g|grams?)?\s*$",
    re.IGNORECASE,
)


def split_food_text(text: str) -> list[tuple[str, float | None]]:
    """Split 'kimchi stew: 300g, rice' into (name, grams-or-None) pairs."""
    pairs: list[tuple[str, float | None]] = []
    for raw in re.split(r"[,\n]", text or ""):
        token = raw.strip()
        if not token:
            continue
        match = _QUANTITY_RE.match(token)
        if match and match.group("name").strip():
            grams = parse_number(match.group("grams").replace(",", "."))
            pairs.append((match.group("name").strip(), grams))
        else:
            pairs.append((token.rstrip(":").strip(), None))
    return [(name, grams) for name, grams in pairs if name]


def find_food(catalog: Sequence[FoodRecord], name: str) -> FoodRecord | None:
    """Exact (case-insensitive) name match first, then substring match."""
    wanted = name.strip().lower()
    if not wanted:
        return None
    partial = None
    for row in catalog:
        food_name = get_food_name(row).lower()
        if not food_name:
            continue
        if food_name == wanted:
            return row
        if partial is None and wanted in food_name:
            partial = row
    return partial


def parse_food_entries(
    text: str,
    catalog: Sequence[FoodRecord],
    serving_defaults: Sequence[ServingDefault] = (),
) -> tuple[list[FoodIntakeEntry], list[str]]:
    """Resolve free-text food input against the catalog.

    Returns:
        (entries, unknown_names). Quantity defaults to the serving estimate,
        then to 100 g.
    """
    entries: list[FoodIntakeEntry] = []
    unknown: list[str] = []
    for name, grams in split_food_text(text):
        record = find_food(catalog, name)
        if record is None:
            unknown.append(name)
            continue
        if grams is None:
            grams = estimate_serving_grams(record, serving_defaults) or DEFAULT_GRAMS
        entries.append(FoodIntakeEntry(food=dict(record), grams=grams))
    if unknown:
        logger.debug("Unresolved food names: %s", unknown)
    return entries, unknown
