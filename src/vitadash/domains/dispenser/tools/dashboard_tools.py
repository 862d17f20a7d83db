"""MCP tools for the live device dashboard.

Device status, the recent activity log, and the push endpoint the device
bridge uses to deliver raw sensor payloads.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitadash.domains.dispenser.connectors.snapshot_parser import (
    SnapshotParseError,
    parse_snapshot,
)
from vitadash.domains.dispenser.domain_logic.models import (
    BOTTLE_CAPACITY,
    LOW_STOCK_THRESHOLD,
    SensorSnapshot,
)
from vitadash.domains.dispenser.domain_logic.monitor import DeviceMonitor, TelemetryError

if TYPE_CHECKING:
    from vitadash.core.audit.logger import AuditLogger
    from vitadash.domains.dispenser.connectors import TelemetrySource

logger = logging.getLogger(__name__)


def _bottle_rows(snapshot: SensorSnapshot) -> list[dict[str, Any]]:
    rows = []
    for bottle_id in snapshot.bottle_ids:
        count = snapshot.pill_counts[bottle_id]
        reading = snapshot.climate.get(bottle_id)
        rows.append({
            "bottle_id": bottle_id,
            "count": count,
            "capacity": BOTTLE_CAPACITY,
            "fill_pct": min(100, round(count / BOTTLE_CAPACITY * 100)),
            "low_stock": count < LOW_STOCK_THRESHOLD,
            "temperature": reading.temperature if reading else None,
            "humidity": reading.humidity if reading else None,
        })
    return rows


def register_dashboard_tools(
    mcp: FastMCP,
    monitor: DeviceMonitor,
    telemetry: TelemetrySource | None = None,
    *,
    default_scope: str = "default",
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register device dashboard tools on the MCP server.

    A finite ``telemetry`` source (the scripted mock) is replayed into the
    monitor on first use; pushed payloads arrive through ``ingest_snapshot``.
    """
    replayed = False

    async def _replay() -> str | None:
        nonlocal replayed
        if telemetry is None or replayed:
            return None
        replayed = True
        try:
            count = await monitor.consume(telemetry, default_scope)
        except TelemetryError as exc:
            return str(exc)
        logger.info("Replayed %d snapshot(s) from %s telemetry", count, telemetry.source_name)
        return None

    @mcp.tool
    async def device_status(ctx: Context) -> str:
        """Current dispenser status: system state, bottle stock and climate readings."""
        error = await _replay()
        snapshot = monitor.latest
        result: dict[str, Any] = {
            "status": "ok",
            "system_status": monitor.status.value,
            "available": monitor.available,
        }
        if error or not monitor.available:
            result["unavailable_reason"] = error or monitor.unavailable_reason
        if snapshot is not None:
            result.update({
                "captured_at": snapshot.captured_at,
                "is_dispensing": snapshot.is_dispensing,
                "fan_on": snapshot.fan_on,
                "last_dispensed_at": snapshot.last_dispensed_at,
                "temperature": round(snapshot.representative_temperature(), 1),
                "humidity": round(snapshot.representative_humidity(), 1),
                "bottles": _bottle_rows(snapshot),
            })
        return json.dumps(result, ensure_ascii=False)

    @mcp.tool
    async def activity_log(ctx: Context, limit: int = 15) -> str:
        """Recent activity events, newest first.

        Args:
            limit: Maximum number of events to return (default: 15).
        """
        await _replay()
        events = monitor.log.recent(limit)
        return json.dumps({
            "status": "ok",
            "count": len(events),
            "capacity": monitor.log.capacity,
            "events": [e.to_dict() for e in events],
        }, ensure_ascii=False)

    @mcp.tool
    async def ingest_snapshot(ctx: Context, payload: dict[str, Any]) -> str:
        """Deliver one raw device payload (bottleNCount, dhtN, fanStatus, timestamp, ...).

        Args:
            payload: The device's key/value state as written to the datastore.
        """
        try:
            snapshot = parse_snapshot(payload)
        except SnapshotParseError as exc:
            logger.error("Rejected snapshot payload: %s", exc)
            return json.dumps({"status": "error", "message": str(exc)})

        dropped_before = monitor.dropped_count
        events = monitor.ingest(snapshot)
        if audit_logger is not None:
            audit_logger.log_tool_call(
                "ingest_snapshot",
                {"captured_at": snapshot.captured_at},
                metadata={"events": len(events)},
            )
        return json.dumps({
            "status": "dropped" if monitor.dropped_count > dropped_before else "accepted",
            "system_status": monitor.status.value,
            "events": [e.to_dict() for e in events],
        }, ensure_ascii=False)
