"""Shared test fixtures for Medly tests."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("KNOWLEDGE_PACK_PATH", "")
    monkeypatch.setenv("LLM_RETRY_BASE_DELAY_S", "0")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from medly.core.storage.models import Log  # noqa: E402

# Fixed reference time: midday, so whole-day offsets never straddle midnight
# in any local timezone a test might run under.
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_log(
    symptom_type: str = "Headache",
    severity: int = 5,
    *,
    days_ago: float = 0,
    id: str | None = None,
    cycle_phase: str | None = None,
    notes: str | None = None,
    tags: list[str] | None = None,
    triggers: list[str] | None = None,
    meds: list[str] | None = None,
    duration_mins: int | None = None,
    now: datetime = NOW,
) -> Log:
    """Create a Log offset from ``now`` by whole or fractional days."""
    return Log(
        id=id or f"log-{symptom_type.lower()}-{days_ago}-{severity}",
        symptom_type=symptom_type,
        severity=severity,
        created_at=now - timedelta(days=days_ago),
        cycle_phase=cycle_phase,
        notes=notes,
        tags=list(tags or []),
        triggers=list(triggers or []),
        meds=list(meds or []),
        duration_mins=duration_mins,
    )


@pytest.fixture
def review_logs() -> list[Log]:
    """Five entries over four logged days (the day-3 entry falls outside a 3-day review)."""
    return [
        make_log("Headache", 5, days_ago=0, id="1", cycle_phase="menstrual", notes="Mild headache"),
        make_log("Fatigue", 6, days_ago=0, id="2", cycle_phase="menstrual"),
        make_log("Headache", 7, days_ago=1, id="3", cycle_phase="menstrual"),
        make_log("Bleeding", 8, days_ago=1, id="4", cycle_phase="menstrual"),
        make_log("Headache", 4, days_ago=2, id="5", cycle_phase="luteal", notes="Mild"),
        make_log("Fatigue", 5, days_ago=3, id="6", cycle_phase="luteal"),
    ]


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def health_db():
    """Create an in-memory HealthDatabase for testing."""
    from medly.core.storage.database import HealthDatabase

    db = HealthDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from medly.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def log_repository(health_db, field_encryptor):
    from medly.core.storage.repository import LogRepository

    return LogRepository(health_db, field_encryptor)


@pytest.fixture
def kb_repository(health_db):
    """Knowledge base seeded with the bundled pack."""
    from medly.core.storage.repository import KnowledgeBaseRepository
    from medly.domains.health.knowledge.seed import ensure_knowledge_base_seeded

    repo = KnowledgeBaseRepository(health_db)
    ensure_knowledge_base_seeded(repo)
    return repo


@pytest.fixture
def kb_documents(kb_repository):
    return kb_repository.get_all()


@pytest.fixture
def audit_logger(health_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from medly.core.audit.logger import AuditLogger

    return AuditLogger(health_db)


@pytest.fixture
def contract_registry():
    """Registry loaded with the bundled answer contracts."""
    from medly.core.contract.loader import load_contract_directory
    from medly.core.contract.registry import ContractRegistry

    registry = ContractRegistry()
    load_contract_directory(
        _SRC_DIR / "medly" / "domains" / "health" / "contracts", registry
    )
    return registry
