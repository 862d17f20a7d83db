"""MCP tools for the user profile, pill bottle configuration and nutrition history.

Registered only when the data bank is enabled (ENCRYPTION_KEY set).
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitadash.core.auth.allowlist import EmailAllowlist, PermissionDeniedError
from vitadash.core.storage.encryption import EncryptionError
from vitadash.core.storage.repository import RepositoryError
from vitadash.domains.dispenser.domain_logic.models import BOTTLE_IDS
from vitadash.domains.dispenser.domain_logic.recommendations import (
    PillBottleConfig,
    load_pill_presets,
)
from vitadash.domains.dispenser.domain_logic.requirements import (
    UserProfile,
    estimate_requirement,
)

if TYPE_CHECKING:
    from vitadash.core.audit.logger import AuditLogger
    from vitadash.core.storage.repository import DispenserRepository

logger = logging.getLogger(__name__)


def register_profile_tools(
    mcp: FastMCP,
    repository: DispenserRepository,
    *,
    allowlist: EmailAllowlist | None = None,
    audit_logger: AuditLogger | None = None,
    default_scope: str = "default",
) -> None:
    """Register profile and configuration tools on the MCP server."""
    allowlist = allowlist or EmailAllowlist()

    def _denied(exc: Exception) -> str:
        return json.dumps({"status": "permission_denied", "message": str(exc)})

    def _failed(exc: Exception) -> str:
        logger.error("Storage operation failed: %s", exc)
        return json.dumps({"status": "error", "message": str(exc)})

    @mcp.tool
    async def get_profile(ctx: Context, scope: str = "", principal: str = "") -> str:
        """Saved profile and the daily calorie requirement estimated from it.

        Args:
            scope: User scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        try:
            allowlist.require(principal)
            profile = repository.load_profile(scope)
        except PermissionDeniedError as exc:
            return _denied(exc)
        except (RepositoryError, EncryptionError) as exc:
            return _failed(exc)

        return json.dumps({
            "status": "ok" if profile is not None else "not_found",
            "profile": profile.to_dict() if profile is not None else None,
            "requirement": estimate_requirement(profile).to_dict(),
        }, ensure_ascii=False)

    @mcp.tool
    async def save_profile(
        ctx: Context,
        profile: dict[str, Any],
        scope: str = "",
        principal: str = "",
    ) -> str:
        """Save the user profile (stored encrypted).

        Args:
            profile: name, age, sex (male/female/other), height_cm, weight_kg,
                activity_level (sedentary/light/moderate/active/very_active),
                diseases (list of labels). Invalid values are stored as missing.
            scope: User scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        user_profile = UserProfile.from_dict(profile)
        try:
            allowlist.require(principal)
            repository.save_profile(scope, user_profile)
        except PermissionDeniedError as exc:
            return _denied(exc)
        except (RepositoryError, EncryptionError) as exc:
            return _failed(exc)

        if audit_logger is not None:
            audit_logger.log_action("profile_save", tool_name="save_profile", scope=scope)
        return json.dumps({
            "status": "saved",
            "profile": user_profile.to_dict(),
            "complete": user_profile.is_complete(),
            "requirement": estimate_requirement(user_profile).to_dict(),
        }, ensure_ascii=False)

    @mcp.tool
    async def get_pill_config(ctx: Context, scope: str = "", principal: str = "") -> str:
        """Which pill type is loaded in each bottle.

        Args:
            scope: User scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        try:
            allowlist.require(principal)
            config = repository.load_pill_config(scope)
        except PermissionDeniedError as exc:
            return _denied(exc)
        except RepositoryError as exc:
            return _failed(exc)

        config = config or PillBottleConfig()
        bottles = {f"bottle{bid}": config.bottles.get(bid, "") for bid in BOTTLE_IDS}
        return json.dumps({"status": "ok", "bottles": bottles}, ensure_ascii=False)

    @mcp.tool
    async def save_pill_config(
        ctx: Context,
        bottles: dict[str, str],
        scope: str = "",
        principal: str = "",
    ) -> str:
        """Set the pill type of each bottle.

        Args:
            bottles: e.g. {"bottle1": "종합비타민", "bottle2": "", "bottle3": "오메가3"}.
                Empty names leave a bottle unset.
            scope: User scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        config = PillBottleConfig.from_dict(bottles)
        unknown = sorted(set(config.bottles) - set(BOTTLE_IDS))
        if unknown:
            return json.dumps({
                "status": "error",
                "message": f"Unknown bottle id(s): {unknown}",
            })
        try:
            allowlist.require(principal)
            repository.save_pill_config(scope, config)
        except PermissionDeniedError as exc:
            return _denied(exc)
        except RepositoryError as exc:
            return _failed(exc)

        if audit_logger is not None:
            audit_logger.log_action(
                "config_save",
                tool_name="save_pill_config",
                scope=scope,
                metadata={"configured": len(config.configured())},
            )
        return json.dumps({"status": "saved", "bottles": config.to_dict()}, ensure_ascii=False)

    @mcp.tool
    async def list_pill_presets(ctx: Context) -> str:
        """Selectable pill types and suggested bottle presets."""
        presets = load_pill_presets()
        return json.dumps({"status": "ok", **presets}, ensure_ascii=False)

    @mcp.tool
    async def recent_nutrition_logs(
        ctx: Context,
        limit: int = 5,
        scope: str = "",
        principal: str = "",
    ) -> str:
        """Most recent saved analyses: deficient nutrients and suggested supplements.

        Args:
            limit: Maximum number of analyses (default: 5).
            scope: User scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        try:
            allowlist.require(principal)
            logs = repository.get_recent_nutrition_logs(scope, limit=limit)
        except PermissionDeniedError as exc:
            return _denied(exc)
        except RepositoryError as exc:
            return _failed(exc)
        return json.dumps({
            "status": "ok",
            "count": len(logs),
            "logs": [log.to_dict() for log in logs],
        }, ensure_ascii=False)
