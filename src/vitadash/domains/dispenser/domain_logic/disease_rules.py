"""Disease-food risk matching against the static disease rule table.

A rule links one disease to one food entity with an explanatory sentence
from the reference corpus. Only rules flagged as risk factors are reported.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

import yaml

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DISEASE_CATEGORIES_PATH = _DATA_DIR / "disease_categories.yaml"

RISK_KEYWORDS = ("increase", "risk")

# Korean display label -> English value used in the rule table.
DISEASE_KO_EN: dict[str, str] = {
    "비만": "obesity",
    "고혈압": "hypertension",
    "당뇨병": "diabetes mellitus",
    "심혈관질환": "cardiovascular disease",
    "암": "cancer",
    "골다공증": "osteoporosis",
    "요로결석": "urinary stones",
    "피부질환": "dermatitis",
}

_TRUE_FLAGS = {"1", "1.0", "true", "yes", "y", "t"}
_FALSE_FLAGS = {"0", "0.0", "false", "no", "n", "f"}


def parse_flag(val: Any) -> bool | None:
    """Interpret a CSV flag cell ("1.0", "true", 1); None when blank or unknown."""
    if val is None:
        return None
    if isinstance(val, bool):
        return val
    if isinstance(val, (int, float)):
        return val != 0
    text = str(val).strip().lower()
    if text in _TRUE_FLAGS:
        return True
    if text in _FALSE_FLAGS:
        return False
    return None


@dataclass(frozen=True)
class DiseaseRule:
    disease: str          # English value, e.g. "obesity"
    label: str = ""       # Korean display label, e.g. "비만"
    food_entity: str = ""
    sentence: str = ""
    is_cause: bool | None = None
    is_treat: bool | None = None
    disease_doid: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DiseaseRule:
        """Build a rule from a CSV row; both table layouts are accepted."""
        disease = (
            row.get("disease")
            or row.get("value")
            or row.get("disease_entity")
            or ""
        )
        return cls(
            disease=str(disease).strip(),
            label=str(row.get("label") or "").strip(),
            food_entity=str(row.get("food_entity") or "").strip(),
            sentence=str(row.get("sentence") or "").strip(),
            is_cause=parse_flag(row.get("is_cause")),
            is_treat=parse_flag(row.get("is_treat")),
            disease_doid=str(row.get("disease_doid") or "").strip(),
        )

    def is_risk_factor(self) -> bool:
        if self.is_cause:
            return True
        sentence = self.sentence.lower()
        return any(kw in sentence for kw in RISK_KEYWORDS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "disease": self.disease,
            "label": self.label,
            "food_entity": self.food_entity,
            "sentence": self.sentence,
            "is_cause": self.is_cause,
            "is_treat": self.is_treat,
            "disease_doid": self.disease_doid,
        }


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

_QUANTITY_SUFFIX_RE = re.compile(r"\s*[:=]?\s*\d+(?:[.,]\d+)?\s*(?:g|grams?)?\s*$", re.IGNORECASE)


def split_food_tokens(food_text: str) -> list[str]:
    """Lowercase food tokens from comma/newline-separated text, quantities removed."""
    tokens = []
    for raw in re.split(r"[,\n]", food_text or ""):
        token = _QUANTITY_SUFFIX_RE.sub("", raw.strip()).rstrip(":").strip().lower()
        if token:
            tokens.append(token)
    return tokens


def to_english_label(label: str) -> str:
    """English rule value for a Korean display label (unchanged if unmapped)."""
    return DISEASE_KO_EN.get(label.strip(), label.strip())


def _selected_names(diseases: Iterable[str]) -> set[str]:
    names: set[str] = set()
    for d in diseases:
        d = (d or "").strip()
        if not d:
            continue
        names.add(d.lower())
        names.add(to_english_label(d).lower())
    return names


def match_risks(
    food_text: str, diseases: Iterable[str], rules: Sequence[DiseaseRule]
) -> list[DiseaseRule]:
    """Rules where a selected disease meets an eaten food flagged as a risk.

    Diseases may be given in either locale. The result keeps the rule
    table's order.
    """
    tokens = split_food_tokens(food_text)
    selected = _selected_names(diseases)
    if not rules or not tokens or not selected:
        return []

    matches = []
    for rule in rules:
        names = {rule.disease.lower(), rule.label.lower()} - {""}
        if not names & selected:
            continue
        food = rule.food_entity.lower()
        if not food or not any(token in food for token in tokens):
            continue
        if rule.is_risk_factor():
            matches.append(rule)
    return matches


# ---------------------------------------------------------------------------
# Disease picker helpers
# ---------------------------------------------------------------------------

def disease_options(rules: Sequence[DiseaseRule]) -> list[dict[str, str]]:
    """Unique (value, label) pairs for the disease picker, sorted by value."""
    options: dict[str, str] = {}
    for rule in rules:
        if rule.disease and not options.get(rule.disease):
            options[rule.disease] = rule.label
    return [{"value": v, "label": options[v] or v} for v in sorted(options)]


@dataclass(frozen=True)
class DiseaseCategory:
    name: str
    keywords: tuple[str, ...]


def load_disease_categories(path: Path | str | None = None) -> list[DiseaseCategory]:
    """Load the keyword category table (bundled YAML by default)."""
    path = Path(path) if path else DISEASE_CATEGORIES_PATH
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    categories = [
        DiseaseCategory(name=c["name"], keywords=tuple(c.get("keywords", [])))
        for c in data.get("categories", [])
    ]
    logger.debug("Loaded %d disease categories from %s", len(categories), path)
    return categories


OTHER_CATEGORY = "other"


def categorize_diseases(
    labels: Iterable[str], categories: Sequence[DiseaseCategory] | None = None
) -> list[dict[str, Any]]:
    """Group disease labels into keyword categories.

    Each label lands in the first matching category; leftovers go to
    ``other``. Empty categories are omitted.
    """
    if categories is None:
        categories = load_disease_categories()
    remaining = list(dict.fromkeys(label for label in labels if label))
    grouped: list[dict[str, Any]] = []
    for category in categories:
        matched = [
            label for label in remaining
            if any(kw.lower() in label.lower() for kw in category.keywords)
        ]
        if matched:
            remaining = [label for label in remaining if label not in matched]
            grouped.append({"name": category.name, "diseases": sorted(matched)})
    if remaining:
        grouped.append({"name": OTHER_CATEGORY, "diseases": sorted(remaining)})
    return grouped


# Keyword groups used by the pill recommendation rules.
CARDIOVASCULAR_KEYWORDS = ("심혈관", "고지혈", "cardio")
BONE_KEYWORDS = ("골다공", "뼈", "osteo")
ANEMIA_KEYWORDS = ("빈혈", "anemia")


def has_condition(diseases: Iterable[str], keywords: Sequence[str]) -> bool:
    """True when any selected disease label contains one of ``keywords``."""
    for d in diseases:
        text = (d or "").lower()
        if any(kw.lower() in text for kw in keywords):
            return True
    return False
