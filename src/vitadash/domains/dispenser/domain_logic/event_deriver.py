"""Deterministic event derivation: two consecutive snapshots -> activity events.

``derive_events`` is a pure transition function. Threshold rules fire on
*crossings* only (previous on one side, current on the other), so a value
that stays above a threshold produces exactly one event.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Iterable, Iterator

from vitadash.domains.dispenser.domain_logic.models import (
    DEFAULT_LOG_CAPACITY,
    HUMIDITY_WARNING_PCT,
    LOW_STOCK_THRESHOLD,
    SHARED_SENSOR_ID,
    TEMP_CRITICAL_C,
    TEMP_WARNING_C,
    ActivityEvent,
    ActivityEventKind,
    SensorSnapshot,
)


def _event_id(occurred_at: float, subject: str, kind: ActivityEventKind) -> str:
    return f"{int(round(occurred_at * 1000))}_{subject}_{kind.value}"


def _make_event(
    kind: ActivityEventKind,
    subject: str,
    message: str,
    occurred_at: float,
    **data,
) -> ActivityEvent:
    return ActivityEvent(
        id=_event_id(occurred_at, subject, kind),
        kind=kind,
        message=message,
        occurred_at=occurred_at,
        data=data,
    )


def _sensor_subject(sensor_id: int) -> str:
    return "device" if sensor_id == SHARED_SENSOR_ID else f"bottle{sensor_id}"


def _sensor_prefix(sensor_id: int) -> str:
    return "" if sensor_id == SHARED_SENSOR_ID else f"Bottle {sensor_id}: "


def _bottle_payload(sensor_id: int) -> dict:
    return {} if sensor_id == SHARED_SENSOR_ID else {"bottle_id": sensor_id}


# ---------------------------------------------------------------------------
# Per-rule detectors
# ---------------------------------------------------------------------------

def _pill_events(
    previous: SensorSnapshot, current: SensorSnapshot, occurred_at: float
) -> list[ActivityEvent]:
    events: list[ActivityEvent] = []
    for bottle_id in current.bottle_ids:
        if bottle_id not in previous.pill_counts:
            continue
        before = previous.pill_counts[bottle_id]
        after = current.pill_counts[bottle_id]
        subject = f"bottle{bottle_id}"

        if after < before:
            delta = before - after
            events.append(_make_event(
                ActivityEventKind.PILL_DISPENSED,
                subject,
                f"Bottle {bottle_id}: {delta} pill(s) dispensed ({before} -> {after})",
                occurred_at,
                bottle_id=bottle_id,
                count=delta,
                before=before,
                after=after,
            ))

        if after < LOW_STOCK_THRESHOLD <= before:
            events.append(_make_event(
                ActivityEventKind.PILL_LOW,
                subject,
                f"Bottle {bottle_id}: refill needed ({after} remaining)",
                occurred_at,
                bottle_id=bottle_id,
                remaining=after,
            ))
    return events


def _fan_events(
    previous: SensorSnapshot, current: SensorSnapshot, occurred_at: float
) -> list[ActivityEvent]:
    if current.fan_on == previous.fan_on:
        return []
    temperature = round(current.representative_temperature(), 1)
    if current.fan_on:
        kind, text = ActivityEventKind.FAN_ON, "Cooling fan started"
    else:
        kind, text = ActivityEventKind.FAN_OFF, "Cooling fan stopped"
    return [_make_event(
        kind,
        "fan",
        f"{text} (temperature: {temperature:.1f}°C)",
        occurred_at,
        temperature=temperature,
    )]


def _climate_events(
    previous: SensorSnapshot, current: SensorSnapshot, occurred_at: float
) -> list[ActivityEvent]:
    events: list[ActivityEvent] = []
    for sensor_id in sorted(current.climate):
        prev = previous.climate.get(sensor_id)
        if prev is None:
            continue
        cur = current.climate[sensor_id]
        subject = _sensor_subject(sensor_id)
        prefix = _sensor_prefix(sensor_id)

        # Critical and warning are an if/elif pair: one transition never emits both.
        if cur.temperature > TEMP_CRITICAL_C and prev.temperature <= TEMP_CRITICAL_C:
            events.append(_make_event(
                ActivityEventKind.TEMP_CRITICAL,
                subject,
                f"{prefix}Critical: temperature too high ({cur.temperature:.1f}°C)",
                occurred_at,
                temperature=cur.temperature,
                **_bottle_payload(sensor_id),
            ))
        elif (
            TEMP_WARNING_C < cur.temperature <= TEMP_CRITICAL_C
            and prev.temperature <= TEMP_WARNING_C
        ):
            events.append(_make_event(
                ActivityEventKind.TEMP_WARNING,
                subject,
                f"{prefix}Warning: temperature rising ({cur.temperature:.1f}°C)",
                occurred_at,
                temperature=cur.temperature,
                **_bottle_payload(sensor_id),
            ))

        if cur.humidity > HUMIDITY_WARNING_PCT and prev.humidity <= HUMIDITY_WARNING_PCT:
            events.append(_make_event(
                ActivityEventKind.HUMIDITY_WARNING,
                subject,
                f"{prefix}Warning: humidity too high ({cur.humidity:.1f}%)",
                occurred_at,
                humidity=cur.humidity,
                **_bottle_payload(sensor_id),
            ))
    return events


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def derive_events(
    previous: SensorSnapshot | None, current: SensorSnapshot
) -> list[ActivityEvent]:
    """Derive the activity events produced by the ``previous -> current`` transition.

    The first observation (``previous is None``) never produces events, which
    keeps an initial page load from replaying the device's whole state as
    an event storm.

    Raises:
        TypeError: If ``current`` is None.
    """
    if current is None:
        raise TypeError("derive_events() requires a current snapshot")
    if previous is None:
        return []

    occurred_at = current.captured_at or time.time()
    return (
        _pill_events(previous, current, occurred_at)
        + _fan_events(previous, current, occurred_at)
        + _climate_events(previous, current, occurred_at)
    )


# ---------------------------------------------------------------------------
# Bounded activity log
# ---------------------------------------------------------------------------

class ActivityLog:
    """Most-recent-first bounded log of activity events.

    Usage::

        log = ActivityLog(capacity=50)
        log.record(derive_events(previous, current))
        latest = log.recent(15)
    """

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._events: list[ActivityEvent] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
        """Prepend new events and evict the oldest beyond capacity.

        An id already held by the log (same millisecond, subject and kind)
        gets a ``_2``, ``_3``... suffix.

        Returns:
            The events as recorded, with their final ids.
        """
        taken = {e.id for e in self._events}
        new: list[ActivityEvent] = []
        for event in events:
            event_id, n = event.id, 1
            while event_id in taken:
                n += 1
                event_id = f"{event.id}_{n}"
            taken.add(event_id)
            new.append(event if event_id == event.id else replace(event, id=event_id))
        if not new:
            return []
        merged = new + self._events
        # Stable sort keeps within-call order for events sharing a timestamp.
        merged.sort(key=lambda e: e.occurred_at, reverse=True)
        self._events = merged[: self._capacity]
        return new

    def recent(self, limit: int | None = None) -> list[ActivityEvent]:
        if limit is None:
            return list(self._events)
        return self._events[: max(0, limit)]

    def clear(self) -> None:
        self._events = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ActivityEvent]:
        return iter(list(self._events))
