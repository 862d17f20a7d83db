"""Data models for the dispenser persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StoredCommand:
    """A dispense or refill command in the device command queue."""

    id: int
    scope: str
    kind: str  # 'dispense' | 'refill' | 'dispense_request'
    bottle_id: int | None
    payload: dict[str, Any]
    status: str = "pending"  # 'pending' | 'sent' | 'done' | 'failed'
    requested_at: float = 0.0
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "bottle_id": self.bottle_id,
            "payload": self.payload,
            "status": self.status,
            "requested_at": self.requested_at,
            "updated_at": self.updated_at,
        }


@dataclass
class NutritionLog:
    """One saved nutrition analysis.

    ``deficient`` rows are ``{"key", "label", "percent"}``; ``supplements``
    rows are ``{"pill_name", "bottle_id"}``.
    """

    timestamp: float
    requirement_label: str = ""
    deficient: list[dict[str, Any]] = field(default_factory=list)
    supplements: list[dict[str, Any]] = field(default_factory=list)
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "requirement_label": self.requirement_label,
            "deficient": list(self.deficient),
            "supplements": list(self.supplements),
        }
