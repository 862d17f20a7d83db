"""CSV reference-table loaders: food catalog, disease rules, serving defaults.

Files are read once and cached. A missing or unreadable file yields an
empty table (with a logged error) so dependent tools return empty results
instead of failing.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any

from vitadash.domains.dispenser.domain_logic.disease_rules import DiseaseRule
from vitadash.domains.dispenser.domain_logic.nutrition import ServingDefault, parse_number

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
BUNDLED_FOOD_CATALOG = _DATA_DIR / "foods.csv"
BUNDLED_DISEASE_RULES = _DATA_DIR / "disease_rules.csv"
BUNDLED_SERVING_DEFAULTS = _DATA_DIR / "serving_defaults.csv"


class CatalogLoadError(Exception):
    """Raised when a reference table cannot be read."""


def read_csv_rows(path: Path | str) -> list[dict[str, str]]:
    """Read a CSV file (UTF-8, optional BOM) into a list of row dicts.

    Raises:
        CatalogLoadError: If the file is missing or not valid CSV.
    """
    path = Path(path).expanduser()
    try:
        with open(path, encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            rows = []
            for row in reader:
                cleaned = {
                    (k or "").strip(): (v or "").strip()
                    for k, v in row.items()
                    if k is not None
                }
                if any(cleaned.values()):
                    rows.append(cleaned)
            return rows
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise CatalogLoadError(f"Failed to read {path}: {exc}") from exc


def parse_serving_row(row: dict[str, Any]) -> ServingDefault | None:
    """Serving default from a row; None when keyword or grams are missing."""
    keyword = row.get("keyword") or row.get("이름") or row.get("food") or ""
    grams = parse_number(row.get("grams") or row.get("g") or row.get("gram"))
    if not keyword or not grams or grams <= 0:
        return None
    category = row.get("category") or row.get("분류") or ""
    return ServingDefault(category=category, keyword=keyword, grams=grams)


class CsvCatalogSource:
    """CatalogSource backed by three CSV files.

    Usage::

        catalog = CsvCatalogSource(foods="foods.csv", disease_rules="rules.csv")
        foods = catalog.load_food_catalog()
    """

    def __init__(
        self,
        foods: Path | str | None = None,
        disease_rules: Path | str | None = None,
        serving_defaults: Path | str | None = None,
    ) -> None:
        self._paths = {
            "foods": foods,
            "disease_rules": disease_rules,
            "serving_defaults": serving_defaults,
        }
        self._cache: dict[str, list] = {}

    def _rows(self, name: str) -> list[dict[str, str]]:
        path = self._paths.get(name)
        if not path:
            return []
        try:
            rows = read_csv_rows(path)
        except CatalogLoadError as exc:
            logger.error("%s", exc)
            return []
        logger.info("Loaded %d %s row(s) from %s", len(rows), name, path)
        return rows

    def load_food_catalog(self) -> list[dict[str, Any]]:
        if "foods" not in self._cache:
            self._cache["foods"] = self._rows("foods")
        return self._cache["foods"]

    def load_disease_rules(self) -> list[DiseaseRule]:
        if "disease_rules" not in self._cache:
            rules = [DiseaseRule.from_row(r) for r in self._rows("disease_rules")]
            self._cache["disease_rules"] = [r for r in rules if r.disease]
        return self._cache["disease_rules"]

    def load_serving_defaults(self) -> list[ServingDefault]:
        if "serving_defaults" not in self._cache:
            parsed = (parse_serving_row(r) for r in self._rows("serving_defaults"))
            self._cache["serving_defaults"] = [s for s in parsed if s is not None]
        return self._cache["serving_defaults"]


class BundledCatalogSource(CsvCatalogSource):
    """Sample tables shipped with the package, used when no paths are configured."""

    def __init__(
        self,
        foods: Path | str | None = None,
        disease_rules: Path | str | None = None,
        serving_defaults: Path | str | None = None,
    ) -> None:
        super().__init__(
            foods=foods or BUNDLED_FOOD_CATALOG,
            disease_rules=disease_rules or BUNDLED_DISEASE_RULES,
            serving_defaults=serving_defaults or BUNDLED_SERVING_DEFAULTS,
        )
