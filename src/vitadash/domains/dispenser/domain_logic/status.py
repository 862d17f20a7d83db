"""System status classification from the latest snapshot."""

from __future__ import annotations

from vitadash.domains.dispenser.domain_logic.models import (
    TEMP_CRITICAL_C,
    SensorSnapshot,
    SystemStatus,
)


def classify_status(
    snapshot: SensorSnapshot | None, *, available: bool = True
) -> SystemStatus:
    """Map the latest snapshot to a single system status.

    Priority (first match wins): offline, dispensing, cooling, error, idle.
    An active fan outranks an over-temperature reading because the device is
    already responding to it.
    """
    if snapshot is None or not available:
        return SystemStatus.OFFLINE
    if snapshot.is_dispensing:
        return SystemStatus.DISPENSING
    if snapshot.fan_on:
        return SystemStatus.COOLING
    if any(r.temperature > TEMP_CRITICAL_C for r in snapshot.climate.values()):
        return SystemStatus.ERROR
    return SystemStatus.IDLE
