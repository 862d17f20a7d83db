"""Parse raw device payloads into ``SensorSnapshot`` values.

Two hardware generations report to the datastore:

    gen 1: top-level ``temperature`` / ``humidity`` from one shared sensor
    gen 2: ``dht1``..``dhtN`` objects, one sensor per bottle

Both report ``bottleNCount``, ``isDispensing``, ``fanStatus`` (bool or
"on"/"off"), ``lastDispensed`` and ``timestamp`` (seconds or milliseconds).
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Mapping

from vitadash.domains.dispenser.domain_logic.models import (
    SHARED_SENSOR_ID,
    ClimateReading,
    SensorSnapshot,
)

logger = logging.getLogger(__name__)

# Values at or above this are epoch milliseconds.
MILLISECONDS_THRESHOLD = 1e10

_BOTTLE_KEY_RE = re.compile(r"^bottle(\d+)Count$")
_DHT_KEY_RE = re.compile(r"^dht(\d+)$")


class SnapshotParseError(Exception):
    """Raised when a payload is not a key/value mapping at all."""


def _number(val: Any, default: float = 0.0) -> float:
    if val is None or isinstance(val, bool):
        return default
    try:
        number = float(str(val).strip().replace(",", "")) if isinstance(val, str) else float(val)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def _flag(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    if isinstance(val, str):
        return val.strip().lower() in {"on", "true", "1", "yes"}
    if isinstance(val, (int, float)):
        return val != 0
    return False


def normalize_timestamp(val: Any) -> float:
    """Unix seconds from a seconds-or-milliseconds value (0.0 when missing)."""
    ts = _number(val)
    if ts <= 0:
        return 0.0
    if ts >= MILLISECONDS_THRESHOLD:
        return ts / 1000
    return ts


def _reading(val: Any) -> ClimateReading | None:
    if not isinstance(val, Mapping):
        return None
    return ClimateReading(
        temperature=_number(val.get("temperature")),
        humidity=_number(val.get("humidity")),
    )


def parse_snapshot(payload: Mapping[str, Any]) -> SensorSnapshot:
    """Build a snapshot from a device payload.

    Missing or garbage numeric fields degrade to 0 and pill counts clamp at 0.

    Raises:
        SnapshotParseError: If ``payload`` is not a mapping.
    """
    if not isinstance(payload, Mapping):
        raise SnapshotParseError(
            f"Snapshot payload must be a mapping, got {type(payload).__name__}"
        )

    pill_counts: dict[int, int] = {}
    climate: dict[int, ClimateReading] = {}
    for key, val in payload.items():
        key = str(key)
        bottle = _BOTTLE_KEY_RE.match(key)
        if bottle:
            pill_counts[int(bottle.group(1))] = max(0, int(_number(val)))
            continue
        dht = _DHT_KEY_RE.match(key)
        if dht:
            reading = _reading(val)
            if reading is not None:
                climate[int(dht.group(1))] = reading
            else:
                logger.debug("Ignoring malformed sensor entry %s", key)

    if not climate and ("temperature" in payload or "humidity" in payload):
        climate[SHARED_SENSOR_ID] = ClimateReading(
            temperature=_number(payload.get("temperature")),
            humidity=_number(payload.get("humidity")),
        )

    # Gen 1 single-bottle payloads use ``pillCount``.
    if not pill_counts and "pillCount" in payload:
        pill_counts[1] = max(0, int(_number(payload.get("pillCount"))))

    return SensorSnapshot(
        pill_counts=pill_counts,
        climate=climate,
        is_dispensing=_flag(payload.get("isDispensing")),
        fan_on=_flag(payload.get("fanStatus")),
        last_dispensed_at=normalize_timestamp(payload.get("lastDispensed")),
        captured_at=normalize_timestamp(payload.get("timestamp")),
    )
