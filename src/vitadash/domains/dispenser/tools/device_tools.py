"""MCP tools for device control: dispense, refill and batched recommended dispense."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitadash.core.auth.allowlist import EmailAllowlist, PermissionDeniedError
from vitadash.core.storage.encryption import EncryptionError
from vitadash.core.storage.repository import RepositoryError
from vitadash.domains.dispenser.domain_logic.analysis import analyze_intake
from vitadash.domains.dispenser.domain_logic.monitor import DeviceMonitor
from vitadash.domains.dispenser.domain_logic.recommendations import (
    DispenseCommand,
    InsufficientStockError,
    build_dispense_command,
    build_dispense_request,
    build_refill_command,
)
from vitadash.domains.dispenser.tools.nutrition_tools import load_user_context

if TYPE_CHECKING:
    from vitadash.core.audit.logger import AuditLogger
    from vitadash.core.storage.repository import DispenserRepository
    from vitadash.domains.dispenser.connectors import CatalogSource, CommandSink

logger = logging.getLogger(__name__)


def register_device_tools(
    mcp: FastMCP,
    monitor: DeviceMonitor,
    command_sink: CommandSink,
    catalog: CatalogSource,
    repository: DispenserRepository | None = None,
    *,
    allowlist: EmailAllowlist | None = None,
    audit_logger: AuditLogger | None = None,
    default_scope: str = "default",
) -> None:
    """Register dispense/refill tools on the MCP server.

    Stock checks use the monitor's latest snapshot; without one the command
    is sent unchecked and the device enforces its own limits.
    """
    allowlist = allowlist or EmailAllowlist()

    def _remaining(bottle_id: int) -> int | None:
        snapshot = monitor.latest
        if snapshot is None:
            return None
        return snapshot.pill_counts.get(bottle_id)

    async def _write(scope: str, command: DispenseCommand, tool_name: str) -> str:
        ack = await command_sink.write_command(scope, command)
        if audit_logger is not None:
            audit_logger.log_action(
                "command_write",
                tool_name=tool_name,
                scope=scope,
                metadata={"kind": command.kind, "bottle_id": command.bottle_id, "count": command.count},
            )
        return ack

    @mcp.tool
    async def dispense(
        ctx: Context,
        bottle_id: int,
        count: int = 1,
        scope: str = "",
        principal: str = "",
    ) -> str:
        """Ask the dispenser to drop pills from one bottle.

        Args:
            bottle_id: Bottle number (1-3).
            count: Number of pills (default: 1).
            scope: User/device scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        try:
            allowlist.require(principal)
            command = build_dispense_command(bottle_id, count, _remaining(bottle_id))
            ack = await _write(scope, command, "dispense")
        except PermissionDeniedError as exc:
            return json.dumps({"status": "permission_denied", "message": str(exc)})
        except InsufficientStockError as exc:
            return json.dumps({
                "status": "insufficient_stock",
                "bottle_id": exc.bottle_id,
                "requested": exc.requested,
                "remaining": exc.remaining,
                "message": str(exc),
            })
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        except RepositoryError as exc:
            logger.error("Failed to write dispense command: %s", exc)
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({"status": "queued", "ack": ack, "command": command.to_dict()})

    @mcp.tool
    async def refill(
        ctx: Context,
        bottle_id: int,
        scope: str = "",
        principal: str = "",
    ) -> str:
        """Top a bottle up to full capacity (18 pills).

        Args:
            bottle_id: Bottle number (1-3).
            scope: User/device scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        remaining = _remaining(bottle_id)
        try:
            allowlist.require(principal)
            command = build_refill_command(bottle_id, remaining or 0)
            if command is None:
                return json.dumps({
                    "status": "already_full",
                    "bottle_id": bottle_id,
                    "remaining": remaining,
                })
            ack = await _write(scope, command, "refill")
        except PermissionDeniedError as exc:
            return json.dumps({"status": "permission_denied", "message": str(exc)})
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        except RepositoryError as exc:
            logger.error("Failed to write refill command: %s", exc)
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({"status": "queued", "ack": ack, "command": command.to_dict()})

    @mcp.tool
    async def request_recommended_dispense(
        ctx: Context,
        foods: str,
        diseases: list[str] | None = None,
        scope: str = "",
        principal: str = "",
    ) -> str:
        """Analyze a meal and dispense one of each recommended pill.

        Bottles without enough stock are skipped and reported.

        Args:
            foods: Comma/newline separated foods with optional grams.
            diseases: Selected disease labels. Defaults to the saved profile's.
            scope: User/device scope (defaults to the configured device).
            principal: Caller email, checked against the allowlist.
        """
        scope = scope or default_scope
        try:
            allowlist.require(principal)
            profile, config = load_user_context(repository, scope)
        except PermissionDeniedError as exc:
            return json.dumps({"status": "permission_denied", "message": str(exc)})
        except (RepositoryError, EncryptionError) as exc:
            logger.error("Failed to load user context: %s", exc)
            return json.dumps({"status": "error", "message": str(exc)})

        analysis = analyze_intake(
            foods,
            catalog.load_food_catalog(),
            serving_defaults=catalog.load_serving_defaults(),
            rules=catalog.load_disease_rules(),
            profile=profile,
            diseases=diseases,
            config=config,
        )
        if not analysis.recommendations:
            return json.dumps({
                "status": "no_recommendations",
                "message": "No configured pill bottles to dispense from.",
            })

        snapshot = monitor.latest
        request, insufficient = build_dispense_request(
            analysis.recommendations,
            analysis.requirement,
            analysis.totals.rounded()["kcal"],
            analysis.diseases,
            pill_counts=snapshot.pill_counts if snapshot is not None else None,
        )

        acks: list[str] = []
        try:
            for item in request.items:
                command = build_dispense_command(
                    item.bottle_id, item.count, requested_at=request.created_at
                )
                acks.append(await _write(scope, command, "request_recommended_dispense"))
        except RepositoryError as exc:
            logger.error("Failed to write dispense request: %s", exc)
            return json.dumps({"status": "error", "message": str(exc), "acks": acks})

        result: dict[str, Any] = {
            "status": "queued" if request.items else "insufficient_stock",
            "request": request.to_dict(),
            "acks": acks,
            "insufficient": [r.to_dict() for r in insufficient],
        }
        return json.dumps(result, ensure_ascii=False)
