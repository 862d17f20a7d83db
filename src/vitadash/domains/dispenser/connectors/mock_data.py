"""Mock device payloads for development and demos.

The sequence walks through a typical afternoon: a dose from bottle 1,
bottle 3 dropping into low stock, bottle 2 overheating until the fan kicks
in, then cooling back down.
"""

from __future__ import annotations

# 2026-01-15 14:00:00 UTC, in device milliseconds.
_BASE_MS = 1_768_485_600_000
_MINUTE_MS = 60_000


def _payload(
    minute: int,
    counts: tuple[int, int, int],
    temps: tuple[float, float, float],
    humidity: tuple[float, float, float] = (45.0, 48.0, 46.0),
    *,
    fan: bool = False,
    dispensing: bool = False,
    last_dispensed_minute: int | None = None,
) -> dict:
    payload = {
        "timestamp": _BASE_MS + minute * _MINUTE_MS,
        "isDispensing": dispensing,
        "fanStatus": fan,
        "lastDispensed": (
            _BASE_MS + last_dispensed_minute * _MINUTE_MS
            if last_dispensed_minute is not None
            else 0
        ),
    }
    for i, count in enumerate(counts, start=1):
        payload[f"bottle{i}Count"] = count
        payload[f"dht{i}"] = {"temperature": temps[i - 1], "humidity": humidity[i - 1]}
    return payload


def get_mock_payloads() -> list[dict]:
    """Return the scripted payload sequence, oldest first."""
    return [
        _payload(0, (12, 9, 6), (24.5, 25.0, 24.8)),
        _payload(5, (12, 9, 6), (24.6, 25.1, 24.8), dispensing=True),
        _payload(6, (11, 9, 6), (24.6, 25.2, 24.9), last_dispensed_minute=6),
        _payload(30, (11, 9, 4), (25.0, 31.2, 25.1), last_dispensed_minute=30),
        _payload(45, (11, 9, 4), (25.3, 36.4, 25.4), (46.0, 72.5, 47.0),
                 last_dispensed_minute=30),
        _payload(46, (11, 9, 4), (25.2, 36.1, 25.3), (46.0, 71.0, 47.0),
                 fan=True, last_dispensed_minute=30),
        _payload(60, (11, 9, 4), (24.9, 28.0, 25.0), fan=False, last_dispensed_minute=30),
    ]
