"""Tests for the scripted telemetry source and the command sinks."""

from __future__ import annotations

import asyncio

from vitadash.domains.dispenser.connectors import CommandSink, TelemetrySource
from vitadash.domains.dispenser.connectors.mock_data import get_mock_payloads
from vitadash.domains.dispenser.connectors.providers import (
    InMemoryCommandSink,
    RepositoryCommandSink,
    ScriptedTelemetrySource,
)
from vitadash.domains.dispenser.domain_logic.recommendations import build_dispense_command


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _collect(source, scope="device-1"):
    return [snap async for snap in source.observe(scope)]


class TestScriptedTelemetrySource:
    def test_satisfies_protocol(self):
        source = ScriptedTelemetrySource()
        assert isinstance(source, TelemetrySource)
        assert source.source_name == "mock"

    def test_replays_mock_payloads_in_order(self):
        source = ScriptedTelemetrySource()
        snaps = _run(_collect(source))
        assert len(snaps) == len(get_mock_payloads()) == len(source)
        times = [s.captured_at for s in snaps]
        assert times == sorted(times)
        assert snaps[0].pill_counts[1] == 12

    def test_accepts_snapshots_and_payloads(self, snapshot_factory, payload_factory):
        source = ScriptedTelemetrySource([snapshot_factory(), payload_factory(counts=(1, 2, 3))])
        snaps = _run(_collect(source))
        assert [s.pill_counts[3] for s in snaps] == [6, 3]


class TestInMemoryCommandSink:
    def test_records_commands(self):
        sink = InMemoryCommandSink()
        assert isinstance(sink, CommandSink)
        command = build_dispense_command(1, 1, requested_at=1.0)
        ack = _run(sink.write_command("device-1", command))

        assert sink.commands == [(ack, "device-1", command)]
        assert len(ack) == 32


class TestRepositoryCommandSink:
    def test_enqueues_in_repository(self, dispenser_repository):
        sink = RepositoryCommandSink(dispenser_repository)
        command = build_dispense_command(2, 1, requested_at=1.0)
        ack = _run(sink.write_command("device-1", command))

        pending = dispenser_repository.get_pending_commands("device-1")
        assert [str(c.id) for c in pending] == [ack]
        assert pending[0].payload == command.to_dict()
        assert pending[0].kind == "dispense"
