"""MCP tools for nutrient analysis, disease-food risks and pill recommendations."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitadash.core.auth.allowlist import EmailAllowlist, PermissionDeniedError
from vitadash.core.storage.encryption import EncryptionError
from vitadash.core.storage.models import NutritionLog
from vitadash.core.storage.repository import RepositoryError
from vitadash.domains.dispenser.domain_logic.analysis import analyze_intake as run_analysis
from vitadash.domains.dispenser.domain_logic.disease_rules import (
    categorize_diseases,
    disease_options,
    match_risks,
)
from vitadash.domains.dispenser.domain_logic.nutrition import (
    extract_nutrient,
    get_food_name,
)
from vitadash.domains.dispenser.domain_logic.nutrition import search_foods as find_foods
from vitadash.domains.dispenser.domain_logic.recommendations import (
    PillBottleConfig,
    recommend_pills as run_recommendations,
)
from vitadash.domains.dispenser.domain_logic.requirements import (
    UserProfile,
    estimate_requirement,
)

if TYPE_CHECKING:
    from vitadash.core.audit.logger import AuditLogger
    from vitadash.core.storage.repository import DispenserRepository
    from vitadash.domains.dispenser.connectors import CatalogSource

logger = logging.getLogger(__name__)


def _food_summary(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": get_food_name(record),
        "kcal_per_100g": extract_nutrient(record, "kcal"),
        "carb_per_100g": extract_nutrient(record, "carb"),
        "protein_per_100g": extract_nutrient(record, "protein"),
        "fat_per_100g": extract_nutrient(record, "fat"),
    }


def load_user_context(
    repository: DispenserRepository | None,
    scope: str,
    profile: dict[str, Any] | None = None,
    pill_config: dict[str, Any] | None = None,
) -> tuple[UserProfile | None, PillBottleConfig | None]:
    """Explicit arguments win; otherwise read the saved profile and pill config."""
    user_profile = UserProfile.from_dict(profile) if profile is not None else None
    config = PillBottleConfig.from_dict(pill_config) if pill_config is not None else None
    if repository is not None:
        if user_profile is None:
            user_profile = repository.load_profile(scope)
        if config is None:
            config = repository.load_pill_config(scope)
    return user_profile, config


def register_nutrition_tools(
    mcp: FastMCP,
    catalog: CatalogSource,
    repository: DispenserRepository | None = None,
    *,
    allowlist: EmailAllowlist | None = None,
    audit_logger: AuditLogger | None = None,
    default_scope: str = "default",
) -> None:
    """Register nutrition and recommendation tools on the MCP server."""
    allowlist = allowlist or EmailAllowlist()

    @mcp.tool
    async def search_foods(ctx: Context, query: str, limit: int = 20) -> str:
        """Search the food catalog by name (case-insensitive substring).

        Args:
            query: Part of a food name, e.g. 'stew' or '찌개'.
            limit: Maximum number of results (default: 20).
        """
        matches = find_foods(catalog.load_food_catalog(), query, limit=limit)
        return json.dumps({
            "status": "ok",
            "query": query,
            "count": len(matches),
            "foods": [_food_summary(m) for m in matches],
        }, ensure_ascii=False)

    @mcp.tool
    async def analyze_intake(
        ctx: Context,
        foods: str,
        diseases: list[str] | None = None,
        profile: dict[str, Any] | None = None,
        pill_config: dict[str, Any] | None = None,
        scope: str = "",
        principal: str = "",
        save_log: bool = False,
    ) -> str:
        """Analyze a meal: nutrient totals vs. daily requirement, disease risks, pills.

        Args:
            foods: Comma/newline separated foods with optional grams,
                e.g. 'kimchi stew: 300g, rice: 200g'. Missing grams use the
                typical serving size, else 100 g.
            diseases: Selected disease labels (Korean or English). Defaults
                to the saved profile's diseases.
            profile: Optional profile overriding the saved one (age, sex,
                height_cm, weight_kg, activity_level, diseases).
            pill_config: Optional bottle config overriding the saved one,
                e.g. {"bottle1": "종합비타민"}.
            scope: User/device scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
            save_log: Store the analysis in the nutrition log (requires storage).
        """
        scope = scope or default_scope
        try:
            allowlist.require(principal)
            user_profile, config = load_user_context(repository, scope, profile, pill_config)
        except PermissionDeniedError as exc:
            return json.dumps({"status": "permission_denied", "message": str(exc)})
        except (RepositoryError, EncryptionError) as exc:
            logger.error("Failed to load user context: %s", exc)
            return json.dumps({"status": "error", "message": str(exc)})

        analysis = run_analysis(
            foods,
            catalog.load_food_catalog(),
            serving_defaults=catalog.load_serving_defaults(),
            rules=catalog.load_disease_rules(),
            profile=user_profile,
            diseases=diseases,
            config=config,
        )
        result = {"status": "ok", **analysis.to_dict()}

        if save_log:
            if repository is None:
                result["log_saved"] = False
                result["log_note"] = "Storage disabled; set ENCRYPTION_KEY to keep history."
            else:
                try:
                    log_id = repository.save_nutrition_log(
                        scope, NutritionLog(**analysis.to_nutrition_log())
                    )
                except RepositoryError as exc:
                    logger.error("Failed to save nutrition log: %s", exc)
                    result["log_saved"] = False
                else:
                    result["log_saved"] = True
                    result["log_id"] = log_id

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "analyze_intake",
                {"foods": foods, "diseases": diseases},
                scope=scope,
                metadata={"entries": len(analysis.entries), "risks": len(analysis.risks)},
            )
        return json.dumps(result, ensure_ascii=False)

    @mcp.tool
    async def disease_risks(ctx: Context, foods: str, diseases: list[str]) -> str:
        """Foods in the meal that the rule table links to a selected disease as a risk.

        Args:
            foods: Comma/newline separated food names.
            diseases: Selected disease labels (Korean or English).
        """
        risks = match_risks(foods, diseases, catalog.load_disease_rules())
        return json.dumps({
            "status": "ok",
            "count": len(risks),
            "risks": [r.to_dict() for r in risks],
        }, ensure_ascii=False)

    @mcp.tool
    async def list_diseases(ctx: Context, categorized: bool = True) -> str:
        """Diseases available for selection, optionally grouped into categories.

        Args:
            categorized: Group labels into keyword categories (default: true).
        """
        options = disease_options(catalog.load_disease_rules())
        result: dict[str, Any] = {"status": "ok", "count": len(options), "diseases": options}
        if categorized:
            result["categories"] = categorize_diseases(o["label"] for o in options)
        return json.dumps(result, ensure_ascii=False)

    @mcp.tool
    async def recommend_pills(
        ctx: Context,
        total_kcal: float,
        diseases: list[str] | None = None,
        profile: dict[str, Any] | None = None,
        pill_config: dict[str, Any] | None = None,
        scope: str = "",
        principal: str = "",
    ) -> str:
        """Pill recommendation per configured bottle for a day's energy intake.

        Args:
            total_kcal: Total energy eaten today (kcal).
            diseases: Selected disease labels. Defaults to the saved profile's.
            profile: Optional profile overriding the saved one.
            pill_config: Optional bottle config overriding the saved one.
            scope: User/device scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        try:
            allowlist.require(principal)
            user_profile, config = load_user_context(repository, scope, profile, pill_config)
        except PermissionDeniedError as exc:
            return json.dumps({"status": "permission_denied", "message": str(exc)})
        except (RepositoryError, EncryptionError) as exc:
            logger.error("Failed to load user context: %s", exc)
            return json.dumps({"status": "error", "message": str(exc)})

        if diseases is None:
            diseases = user_profile.diseases if user_profile is not None else []
        requirement = estimate_requirement(user_profile)
        recs = run_recommendations(total_kcal, requirement, diseases, config)
        result: dict[str, Any] = {
            "status": "ok",
            "requirement": requirement.to_dict(),
            "recommendations": [r.to_dict() for r in recs],
        }
        if config is None:
            result["note"] = "No pill bottles configured."
        return json.dumps(result, ensure_ascii=False)
