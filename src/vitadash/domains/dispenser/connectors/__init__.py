"""Dispenser connectors: abstraction layer for telemetry, commands and catalogs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, AsyncIterator, Protocol, runtime_checkable

if TYPE_CHECKING:
    from vitadash.domains.dispenser.domain_logic.disease_rules import DiseaseRule
    from vitadash.domains.dispenser.domain_logic.models import SensorSnapshot
    from vitadash.domains.dispenser.domain_logic.nutrition import ServingDefault
    from vitadash.domains.dispenser.domain_logic.recommendations import DispenseCommand


@runtime_checkable
class TelemetrySource(Protocol):
    """Push-based stream of device snapshots.

    The monitor iterates ``observe`` without knowing whether snapshots come
    from a datastore listener or a scripted demo.
    """

    def observe(self, scope: str) -> AsyncIterator[SensorSnapshot]:
        """Yield snapshots for ``scope`` (a device or user id) as they arrive."""
        ...

    @property
    def source_name(self) -> str:
        """Label for the active source, e.g. 'mock'."""
        ...


@runtime_checkable
class CommandSink(Protocol):
    """Destination for dispense and refill commands."""

    async def write_command(self, scope: str, command: DispenseCommand) -> str:
        """Write ``command``; returns an acknowledgement id, raises on failure."""
        ...


@runtime_checkable
class CatalogSource(Protocol):
    """Static reference tables, loaded once per session."""

    def load_food_catalog(self) -> list[dict[str, Any]]:
        ...

    def load_disease_rules(self) -> list[DiseaseRule]:
        ...

    def load_serving_defaults(self) -> list[ServingDefault]:
        ...
