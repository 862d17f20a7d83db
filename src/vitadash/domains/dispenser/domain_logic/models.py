"""Dispenser domain models and fixed system constants."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


# ---------------------------------------------------------------------------
# System constants (hardware generation 2: three bottles, one DHT per bottle)
# ---------------------------------------------------------------------------

BOTTLE_IDS = (1, 2, 3)
BOTTLE_CAPACITY = 18

TEMP_CRITICAL_C = 35.0
TEMP_WARNING_C = 30.0
HUMIDITY_WARNING_PCT = 70.0
LOW_STOCK_THRESHOLD = 5

DEFAULT_LOG_CAPACITY = 50

# Legacy single-sensor devices report one shared climate reading under this key.
SHARED_SENSOR_ID = 0


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


class ActivityEventKind(str, enum.Enum):
    """Closed set of activity events derived from snapshot transitions."""

    PILL_DISPENSED = "pill_dispensed"
    FAN_ON = "fan_on"
    FAN_OFF = "fan_off"
    TEMP_WARNING = "temp_warning"
    TEMP_CRITICAL = "temp_critical"
    HUMIDITY_WARNING = "humidity_warning"
    PILL_LOW = "pill_low"


class SystemStatus(str, enum.Enum):
    OFFLINE = "offline"
    DISPENSING = "dispensing"
    COOLING = "cooling"
    ERROR = "error"
    IDLE = "idle"


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClimateReading:
    """One temperature/humidity sensor reading."""

    temperature: float  # °C
    humidity: float     # %RH, 0-100


@dataclass(frozen=True)
class SensorSnapshot:
    """One consistent reading of the whole device at ``captured_at``.

    Snapshots are immutable: the mappings are wrapped in read-only proxies
    at construction time, so the deriver can only compare two of them.
    """

    pill_counts: Mapping[int, int]
    climate: Mapping[int, ClimateReading]
    is_dispensing: bool = False
    fan_on: bool = False
    last_dispensed_at: float = 0.0  # unix seconds, 0 = never
    captured_at: float = 0.0        # unix seconds

    def __post_init__(self) -> None:
        object.__setattr__(self, "pill_counts", MappingProxyType(dict(self.pill_counts)))
        object.__setattr__(self, "climate", MappingProxyType(dict(self.climate)))

    @property
    def bottle_ids(self) -> list[int]:
        return sorted(self.pill_counts)

    def representative_temperature(self) -> float:
        """Average temperature across all sensors (0.0 when none reported)."""
        if not self.climate:
            return 0.0
        return sum(r.temperature for r in self.climate.values()) / len(self.climate)

    def representative_humidity(self) -> float:
        """Average humidity across all sensors (0.0 when none reported)."""
        if not self.climate:
            return 0.0
        return sum(r.humidity for r in self.climate.values()) / len(self.climate)

    def max_temperature(self) -> float | None:
        if not self.climate:
            return None
        return max(r.temperature for r in self.climate.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "pill_counts": {str(k): v for k, v in sorted(self.pill_counts.items())},
            "climate": {
                str(k): {"temperature": r.temperature, "humidity": r.humidity}
                for k, r in sorted(self.climate.items())
            },
            "is_dispensing": self.is_dispensing,
            "fan_on": self.fan_on,
            "last_dispensed_at": self.last_dispensed_at,
            "captured_at": self.captured_at,
        }


# ---------------------------------------------------------------------------
# Activity events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ActivityEvent:
    """A discrete, human-meaningful occurrence derived from a transition."""

    id: str
    kind: ActivityEventKind
    message: str
    occurred_at: float
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "message": self.message,
            "occurred_at": self.occurred_at,
            "data": dict(self.data),
        }
