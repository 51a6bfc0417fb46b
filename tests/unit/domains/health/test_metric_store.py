"""Tests for the per-day metric cache."""

from __future__ import annotations

from datetime import date

from bandwidth.core.storage.models import COMPUTED_DATA, HEALTH_DATA
from bandwidth.core.storage.repository import BandwidthRepository
from bandwidth.core.storage.encryption import FieldEncryptor
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind
from bandwidth.domains.health.domain_logic.metric_store import MetricStore

DAY = date(2026, 2, 1)


def test_missing_value_is_none(metric_store):
    assert metric_store.get("alice", MetricKind.STEPS, DAY) is None


def test_put_then_get(metric_store):
    metric_store.put("alice", MetricKind.STEPS, DAY, 8200)
    assert metric_store.get("alice", MetricKind.STEPS, DAY) == 8200.0


def test_kinds_share_a_day_document(metric_store, repository):
    metric_store.put("alice", MetricKind.STEPS, DAY, 8200)
    metric_store.put("alice", MetricKind.RESTING_HEART_RATE, DAY, 61)
    doc = repository.get_document("alice", HEALTH_DATA, DAY.isoformat())
    assert doc.fields["steps"] == 8200.0
    assert doc.fields["rhr"] == 61.0


def test_computed_kinds_go_to_computed_data(metric_store, repository):
    metric_store.put("alice", MetricKind.BANDWIDTH, DAY, 0.12)
    assert repository.get_document("alice", COMPUTED_DATA, DAY.isoformat()).fields["bandwidth"] == 0.12
    assert repository.get_document("alice", HEALTH_DATA, DAY.isoformat()) is None


def test_users_are_isolated(metric_store):
    metric_store.put("alice", MetricKind.STEPS, DAY, 100)
    assert metric_store.get("bob", MetricKind.STEPS, DAY) is None


def test_non_numeric_value_is_a_miss(metric_store, repository):
    repository.merge_document("alice", COMPUTED_DATA, DAY.isoformat(), {"bandwidth": "high"})
    assert metric_store.get("alice", MetricKind.BANDWIDTH, DAY) is None


def test_bool_value_is_a_miss(metric_store, repository):
    repository.merge_document("alice", COMPUTED_DATA, DAY.isoformat(), {"bandwidth": True})
    assert metric_store.get("alice", MetricKind.BANDWIDTH, DAY) is None


def test_undecryptable_document_is_a_miss(metric_store, bandwidth_db):
    metric_store.put("alice", MetricKind.STEPS, DAY, 100)
    other = MetricStore(BandwidthRepository(bandwidth_db, FieldEncryptor(FieldEncryptor.generate_key())))
    assert other.get("alice", MetricKind.STEPS, DAY) is None
    assert other.history("alice", MetricKind.STEPS, DAY, DAY) == []


def test_history_is_inclusive_and_skips_invalid(metric_store, repository):
    metric_store.put("alice", MetricKind.BANDWIDTH, date(2026, 1, 30), 0.1)
    metric_store.put("alice", MetricKind.BANDWIDTH, date(2026, 1, 31), 0.2)
    repository.merge_document("alice", COMPUTED_DATA, "2026-02-01", {"sleepComponent": 0.5})
    metric_store.put("alice", MetricKind.BANDWIDTH, date(2026, 2, 2), 0.4)
    metric_store.put("alice", MetricKind.BANDWIDTH, date(2026, 2, 3), 0.9)

    history = metric_store.history("alice", MetricKind.BANDWIDTH, date(2026, 1, 30), date(2026, 2, 2))
    assert [(v.day, v.value) for v in history] == [
        (date(2026, 1, 30), 0.1),
        (date(2026, 1, 31), 0.2),
        (date(2026, 2, 2), 0.4),
    ]
    assert all(v.written_at for v in history)
