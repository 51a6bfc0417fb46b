"""Tests for the metric kind registry."""

from __future__ import annotations

import pytest

from bandwidth.core.storage.models import COMPUTED_DATA, HEALTH_DATA
from bandwidth.domains.health.domain_logic.metric_kinds import (
    AGGREGATE_KINDS,
    COMPUTED_KINDS,
    RAW_KINDS,
    Aggregation,
    MetricKind,
    parse_metric_kind,
)


def test_cache_keys_are_stable():
    assert [k.cache_key for k in MetricKind] == [
        "rhr",
        "hrv",
        "activeEnergy",
        "exerciseMinutes",
        "steps",
        "elevatedHeartRateTime",
        "sleepTime",
        "heartRateComponent",
        "exerciseComponent",
        "sleepComponent",
        "bandwidth",
    ]


def test_raw_and_computed_partition():
    assert set(RAW_KINDS) | set(COMPUTED_KINDS) == set(MetricKind)
    assert not set(RAW_KINDS) & set(COMPUTED_KINDS)
    assert MetricKind.BANDWIDTH in COMPUTED_KINDS


def test_namespaces():
    assert MetricKind.STEPS.namespace == HEALTH_DATA
    assert MetricKind.ELEVATED_HEART_RATE_TIME.namespace == HEALTH_DATA
    assert MetricKind.SLEEP_COMPONENT.namespace == COMPUTED_DATA
    assert MetricKind.BANDWIDTH.namespace == COMPUTED_DATA


def test_every_kind_caches():
    assert all(k.should_cache for k in MetricKind)


def test_aggregations():
    assert MetricKind.STEPS.aggregation is Aggregation.SUM
    assert MetricKind.RESTING_HEART_RATE.aggregation is Aggregation.AVERAGE
    assert MetricKind.SLEEP_TIME.aggregation is Aggregation.DERIVED
    assert set(AGGREGATE_KINDS) == {
        MetricKind.RESTING_HEART_RATE,
        MetricKind.HEART_RATE_VARIABILITY,
        MetricKind.ACTIVE_ENERGY,
        MetricKind.EXERCISE_MINUTES,
        MetricKind.STEPS,
    }


def test_display_names():
    assert MetricKind.ACTIVE_ENERGY.display_name == "Calories Burned"
    assert MetricKind.BANDWIDTH.display_name == "Bandwidth"


class TestParse:
    def test_by_cache_key(self):
        assert parse_metric_kind("hrv") is MetricKind.HEART_RATE_VARIABILITY

    def test_by_name(self):
        assert parse_metric_kind("resting_heart_rate") is MetricKind.RESTING_HEART_RATE

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown metric kind"):
            parse_metric_kind("glucose")
