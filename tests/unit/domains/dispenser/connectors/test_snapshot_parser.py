"""Tests for device payload parsing."""

from __future__ import annotations

import pytest

from vitadash.domains.dispenser.connectors.snapshot_parser import (
    SnapshotParseError,
    normalize_timestamp,
    parse_snapshot,
)
from vitadash.domains.dispenser.domain_logic.models import SHARED_SENSOR_ID


class TestNormalizeTimestamp:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (1_768_485_600_000, 1_768_485_600.0),
            (1_768_485_600, 1_768_485_600.0),
            ("1768485600000", 1_768_485_600.0),
            (0, 0.0),
            (None, 0.0),
            ("later", 0.0),
            (-5, 0.0),
        ],
    )
    def test_values(self, value, expected):
        assert normalize_timestamp(value) == expected


class TestParseSnapshot:
    def test_gen2_payload(self, payload_factory):
        payload = payload_factory(counts=(12, 9, 6), temps=(24.5, 31.2, 25.0), fan="on")
        snap = parse_snapshot(payload)

        assert dict(snap.pill_counts) == {1: 12, 2: 9, 3: 6}
        assert snap.climate[2].temperature == 31.2
        assert snap.climate[2].humidity == 45.0
        assert snap.fan_on is True
        assert snap.is_dispensing is False
        assert snap.captured_at == 1_768_485_600.0
        assert snap.last_dispensed_at == 0.0

    def test_legacy_shared_sensor(self):
        snap = parse_snapshot({
            "pillCount": 7, "temperature": "28.5", "humidity": 55,
            "fanStatus": "off", "timestamp": 1_768_485_600,
        })
        assert dict(snap.pill_counts) == {1: 7}
        assert list(snap.climate) == [SHARED_SENSOR_ID]
        assert snap.climate[SHARED_SENSOR_ID].temperature == 28.5
        assert snap.fan_on is False

    def test_garbage_degrades(self):
        snap = parse_snapshot({
            "bottle1Count": -3,
            "bottle2Count": "many",
            "dht1": {"temperature": None, "humidity": "wet"},
            "dht2": "broken",
            "isDispensing": "yes",
        })
        assert dict(snap.pill_counts) == {1: 0, 2: 0}
        assert snap.climate[1].temperature == 0.0
        assert snap.climate[1].humidity == 0.0
        assert 2 not in snap.climate
        assert snap.is_dispensing is True
        assert snap.captured_at == 0.0

    def test_unrelated_keys_ignored(self):
        snap = parse_snapshot({"bottle1Count": 4, "firmware": "1.2", "bottleCount": 3})
        assert dict(snap.pill_counts) == {1: 4}
        assert not snap.climate

    def test_snapshot_is_read_only(self, payload_factory):
        snap = parse_snapshot(payload_factory())
        with pytest.raises(TypeError):
            snap.pill_counts[1] = 0

    @pytest.mark.parametrize("payload", [None, [1, 2], "bottle1Count=3"])
    def test_non_mapping_rejected(self, payload):
        with pytest.raises(SnapshotParseError):
            parse_snapshot(payload)
