"""Shared test fixtures for TIPS Compass tests."""

from __future__ import annotations

import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("ENCRYPTION_PREVIOUS_KEYS", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


def make_checkin_record(**overrides: Any) -> dict[str, Any]:
    """A complete, unremarkable check-in record (green on its own)."""
    record: dict[str, Any] = {
        "patientId": "patient_001",
        "date": "2026-02-01",
        "confusion": False,
        "sleepReversal": False,
        "tremor": False,
        "bowelMovements": 3,
        "weightKg": 75.0,
        "bleeding": False,
        "fever": False,
        "medsTaken": {"lactulose": True, "rifaximin": True, "diuretics": True},
    }
    record.update(overrides)
    return record


# ---------------------------------------------------------------------------
# In-memory check-in store
# ---------------------------------------------------------------------------

class FakeCheckInStore:
    """CheckInStore over plain dicts, with call recording and failure injection."""

    def __init__(self, checkins: list[Mapping[str, Any]] | None = None) -> None:
        self.checkins: list[Mapping[str, Any]] = list(checkins or [])
        self.risk_states: dict[str, dict[str, Any]] = {}
        self.history_calls: list[tuple[str, str, int]] = []
        self.merge_calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_reads: Exception | None = None
        self.fail_writes: Exception | None = None

    async def recent_checkins(
        self, patient_id: str, up_to_date: str, limit: int
    ) -> list[Mapping[str, Any]]:
        self.history_calls.append((patient_id, up_to_date, limit))
        if self.fail_reads is not None:
            raise self.fail_reads
        matching = [
            c for c in self.checkins
            if c.get("patientId") == patient_id and c.get("date", "") <= up_to_date
        ]
        matching.sort(key=lambda c: c["date"], reverse=True)
        return matching[:limit]

    async def merge_risk_state(self, patient_id: str, fields: Mapping[str, Any]) -> None:
        self.merge_calls.append((patient_id, dict(fields)))
        if self.fail_writes is not None:
            raise self.fail_writes
        self.risk_states.setdefault(patient_id, {}).update(fields)


@pytest.fixture
def fake_store() -> FakeCheckInStore:
    return FakeCheckInStore()


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def compass_db():
    """Create an in-memory CompassDatabase for testing."""
    from tipscompass.core.storage.database import CompassDatabase

    db = CompassDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from tipscompass.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def compass_repository(compass_db, field_encryptor):
    """Create a CompassRepository backed by in-memory SQLite."""
    from tipscompass.core.storage.repository import CompassRepository

    return CompassRepository(compass_db, field_encryptor)


@pytest.fixture
def repository_store(compass_repository):
    """The repository-backed CheckInStore."""
    from tipscompass.domains.tips.store import RepositoryCheckInStore

    return RepositoryCheckInStore(compass_repository)


@pytest.fixture
def audit_logger(compass_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from tipscompass.core.audit.logger import AuditLogger

    return AuditLogger(compass_db)


@pytest.fixture
def checkin_record():
    """Factory for check-in records: ``checkin_record(fever=True)``."""
    return make_checkin_record
