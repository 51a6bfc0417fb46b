"""Shared test fixtures for Bandwidth Health tests."""

from __future__ import annotations

import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("USER_ID", "")
    monkeypatch.setenv("APPLE_HEALTH_EXPORT_PATH", "")
    monkeypatch.setenv("PUSH_GATEWAY_URL", "")
    monkeypatch.setenv("TIME_ZONE", "UTC")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from bandwidth.core.auth.identity import SessionIdentity  # noqa: E402
from bandwidth.core.clock import DayClock  # noqa: E402
from bandwidth.core.storage.models import UserProfile  # noqa: E402

TODAY = date(2026, 2, 10)


class FrozenNow:
    """Settable wall clock for DayClock."""

    def __init__(self, value: datetime) -> None:
        self.value = value

    def __call__(self) -> datetime:
        return self.value

    def set(self, hour: int, minute: int = 0, day: date = TODAY) -> None:
        self.value = datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Clock and identity
# ---------------------------------------------------------------------------

@pytest.fixture
def frozen_now() -> FrozenNow:
    """Wall clock pinned to 2026-02-10 09:00 UTC (outside the alert windows)."""
    return FrozenNow(datetime(2026, 2, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def clock(frozen_now: FrozenNow) -> DayClock:
    return DayClock("UTC", now=frozen_now)


@pytest.fixture
def identity() -> SessionIdentity:
    return SessionIdentity("alice")


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def bandwidth_db():
    """Create an in-memory BandwidthDatabase for testing."""
    from bandwidth.core.storage.database import BandwidthDatabase

    db = BandwidthDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from bandwidth.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def repository(bandwidth_db, field_encryptor):
    """Create a BandwidthRepository backed by in-memory SQLite."""
    from bandwidth.core.storage.repository import BandwidthRepository

    return BandwidthRepository(bandwidth_db, field_encryptor)


@pytest.fixture
def audit_logger(bandwidth_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from bandwidth.core.audit.logger import AuditLogger

    return AuditLogger(bandwidth_db)


@pytest.fixture
def paired_users(repository):
    """alice is paired with bob; bob has a device token."""
    repository.upsert_user(UserProfile(id="alice", name="Alice", paired_with="bob"))
    repository.upsert_user(
        UserProfile(id="bob", name="Bob", paired_with="alice", device_token="tok-bob")
    )


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def metric_store(repository):
    from bandwidth.domains.health.domain_logic.metric_store import MetricStore

    return MetricStore(repository)


@pytest.fixture
def mock_source():
    """Deterministic source with no default data: unset values read as 0."""
    from bandwidth.domains.health.connectors.providers import MockBiometricSource

    return MockBiometricSource(use_defaults=False)


@pytest.fixture
def fetcher(mock_source, metric_store, clock):
    from bandwidth.domains.health.domain_logic.daily_metrics import DailyMetricFetcher

    return DailyMetricFetcher(mock_source, metric_store, clock)


@pytest.fixture
def settings_manager(repository):
    from bandwidth.domains.health.domain_logic.score_settings import SettingsManager

    return SettingsManager(repository, "alice")


@pytest.fixture
def notifier():
    from bandwidth.core.notify.dispatch import LoggingNotificationDispatch

    return LoggingNotificationDispatch()


@pytest.fixture
def session(identity, repository, mock_source, notifier, clock, audit_logger):
    """A fully wired scoring session for alice."""
    from bandwidth.domains.health.domain_logic.session import create_session

    return create_session(
        identity=identity,
        repository=repository,
        source=mock_source,
        notifier=notifier,
        clock=clock,
        audit_logger=audit_logger,
        poll_interval=0.01,
    )
