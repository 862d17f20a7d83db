"""Shared test fixtures for VitaDash tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("TELEMETRY_SOURCE", "push")
    monkeypatch.setenv("ALLOWED_EMAILS", "")
    monkeypatch.setenv("DB_PATH", ":memory:")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from vitadash.domains.dispenser.domain_logic.models import (  # noqa: E402
    ClimateReading,
    SensorSnapshot,
)


def make_snapshot(
    counts: tuple[int, ...] = (12, 9, 6),
    temps: tuple[float, ...] = (24.0, 24.0, 24.0),
    humidity: tuple[float, ...] | None = None,
    *,
    fan: bool = False,
    dispensing: bool = False,
    captured_at: float = 1_768_485_600.0,
) -> SensorSnapshot:
    """Snapshot with one bottle and one sensor per position in ``counts``."""
    humidity = humidity or tuple(45.0 for _ in temps)
    return SensorSnapshot(
        pill_counts={i: c for i, c in enumerate(counts, start=1)},
        climate={
            i: ClimateReading(temperature=t, humidity=h)
            for i, (t, h) in enumerate(zip(temps, humidity), start=1)
        },
        is_dispensing=dispensing,
        fan_on=fan,
        captured_at=captured_at,
    )


def make_payload(
    counts: tuple[int, ...] = (12, 9, 6),
    temps: tuple[float, ...] = (24.0, 24.0, 24.0),
    *,
    timestamp_ms: int = 1_768_485_600_000,
    fan: bool | str = False,
    dispensing: bool = False,
) -> dict:
    """Raw device payload in the gen-2 layout."""
    payload: dict = {
        "timestamp": timestamp_ms,
        "isDispensing": dispensing,
        "fanStatus": fan,
        "lastDispensed": 0,
    }
    for i, (count, temp) in enumerate(zip(counts, temps), start=1):
        payload[f"bottle{i}Count"] = count
        payload[f"dht{i}"] = {"temperature": temp, "humidity": 45.0}
    return payload


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def payload_factory():
    return make_payload


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

@pytest.fixture
def bundled_catalog():
    """Catalog backed by the sample CSVs shipped with the package."""
    from vitadash.domains.dispenser.connectors.catalog import BundledCatalogSource

    return BundledCatalogSource()


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def dispenser_db():
    """Create an in-memory DispenserDatabase for testing."""
    from vitadash.core.storage.database import DispenserDatabase

    db = DispenserDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from vitadash.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def dispenser_repository(dispenser_db, field_encryptor):
    """Create a DispenserRepository backed by in-memory SQLite."""
    from vitadash.core.storage.repository import DispenserRepository

    return DispenserRepository(dispenser_db, field_encryptor)


@pytest.fixture
def audit_logger(dispenser_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from vitadash.core.audit.logger import AuditLogger

    return AuditLogger(dispenser_db)
