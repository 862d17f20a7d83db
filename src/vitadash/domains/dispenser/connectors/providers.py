"""Concrete telemetry sources and command sinks."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, AsyncIterator, Iterable, Mapping

from vitadash.domains.dispenser.connectors.mock_data import get_mock_payloads
from vitadash.domains.dispenser.connectors.snapshot_parser import parse_snapshot
from vitadash.domains.dispenser.domain_logic.models import SensorSnapshot
from vitadash.domains.dispenser.domain_logic.recommendations import DispenseCommand

if TYPE_CHECKING:
    from vitadash.core.storage.repository import DispenserRepository

logger = logging.getLogger(__name__)


class ScriptedTelemetrySource:
    """Replays a fixed payload sequence. Always available, ends after the last item.

    Usage::

        source = ScriptedTelemetrySource()           # bundled demo afternoon
        source = ScriptedTelemetrySource([p1, p2])   # explicit payloads
        await monitor.consume(source, "device-1")
    """

    def __init__(self, payloads: Iterable[Mapping | SensorSnapshot] | None = None) -> None:
        items = list(payloads) if payloads is not None else get_mock_payloads()
        self._snapshots = [
            item if isinstance(item, SensorSnapshot) else parse_snapshot(item)
            for item in items
        ]

    async def observe(self, scope: str) -> AsyncIterator[SensorSnapshot]:
        logger.debug("Replaying %d scripted snapshot(s) for %s", len(self._snapshots), scope)
        for snapshot in self._snapshots:
            yield snapshot

    @property
    def source_name(self) -> str:
        return "mock"

    def __len__(self) -> int:
        return len(self._snapshots)


class InMemoryCommandSink:
    """Keeps written commands in a list. Used when storage is disabled and in tests."""

    def __init__(self) -> None:
        self.commands: list[tuple[str, str, DispenseCommand]] = []

    async def write_command(self, scope: str, command: DispenseCommand) -> str:
        ack = uuid.uuid4().hex
        self.commands.append((ack, scope, command))
        logger.info(
            "Queued %s command for bottle %d (count=%d)",
            command.kind,
            command.bottle_id,
            command.count,
        )
        return ack


class RepositoryCommandSink:
    """Writes commands to the command queue table for the device bridge to pick up."""

    def __init__(self, repository: DispenserRepository) -> None:
        self._repo = repository

    async def write_command(self, scope: str, command: DispenseCommand) -> str:
        command_id = self._repo.enqueue_command(scope, command.to_dict())
        logger.info(
            "Queued %s command %d for bottle %d (count=%d)",
            command.kind,
            command_id,
            command.bottle_id,
            command.count,
        )
        return str(command_id)
