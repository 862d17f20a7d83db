"""Device monitor: owns the previous-snapshot slot and the activity log."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vitadash.domains.dispenser.domain_logic.event_deriver import ActivityLog, derive_events
from vitadash.domains.dispenser.domain_logic.models import (
    DEFAULT_LOG_CAPACITY,
    ActivityEvent,
    SensorSnapshot,
    SystemStatus,
)
from vitadash.domains.dispenser.domain_logic.status import classify_status

if TYPE_CHECKING:
    from vitadash.domains.dispenser.connectors import TelemetrySource

logger = logging.getLogger(__name__)


class TelemetryError(Exception):
    """Raised when the telemetry transport fails."""


class DeviceMonitor:
    """Serializes snapshots into ``derive_events`` and keeps the recent log.

    Snapshots older than the last accepted one are dropped, so the deriver
    always compares against the immediately preceding reading.
    """

    def __init__(self, log_capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        self._previous: SensorSnapshot | None = None
        self._log = ActivityLog(capacity=log_capacity)
        self._available = False
        self._unavailable_reason = "no telemetry received yet"
        self._dropped = 0
        self._last_captured_at = 0.0

    # --- State ---

    @property
    def latest(self) -> SensorSnapshot | None:
        return self._previous

    @property
    def log(self) -> ActivityLog:
        return self._log

    @property
    def available(self) -> bool:
        return self._available

    @property
    def unavailable_reason(self) -> str | None:
        return None if self._available else self._unavailable_reason

    @property
    def dropped_count(self) -> int:
        return self._dropped

    @property
    def status(self) -> SystemStatus:
        return classify_status(self._previous, available=self._available)

    def mark_unavailable(self, reason: str) -> None:
        if self._available:
            logger.warning("Telemetry unavailable: %s", reason)
        self._available = False
        self._unavailable_reason = reason

    # --- Ingestion ---

    def ingest(self, snapshot: SensorSnapshot) -> list[ActivityEvent]:
        """Accept one snapshot; returns the events it produced.

        A snapshot without a device timestamp (``captured_at == 0``) is
        accepted and stamped with the wall clock by the deriver. Ordering is
        checked against the last snapshot that carried one.
        """
        if snapshot.captured_at and snapshot.captured_at < self._last_captured_at:
            self._dropped += 1
            logger.warning(
                "Dropping out-of-order snapshot (captured_at=%.3f < %.3f)",
                snapshot.captured_at,
                self._last_captured_at,
            )
            return []
        if not snapshot.captured_at:
            logger.debug("Snapshot has no device timestamp; using wall clock")
        else:
            self._last_captured_at = snapshot.captured_at

        events = self._log.record(derive_events(self._previous, snapshot))
        self._previous = snapshot
        self._available = True
        if events:
            logger.info("Derived %d activity event(s)", len(events))
        return events

    async def consume(self, source: TelemetrySource, scope: str) -> int:
        """Ingest every snapshot from ``source`` until the stream ends.

        Returns:
            Number of snapshots received.

        Raises:
            TelemetryError: If the transport fails mid-stream.
        """
        received = 0
        try:
            async for snapshot in source.observe(scope):
                self.ingest(snapshot)
                received += 1
        except Exception as exc:
            self.mark_unavailable(str(exc) or type(exc).__name__)
            logger.exception("Telemetry stream for %s failed", scope)
            raise TelemetryError(f"Telemetry stream failed: {exc}") from exc
        return received
