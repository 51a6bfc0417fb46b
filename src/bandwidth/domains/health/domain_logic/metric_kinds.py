"""Canonical registry of metric kinds.

Every raw signal and computed score has exactly one entry here. The enum
value is the document field name (cache key) that history views and exports
read verbatim, so values must never change.
"""

from __future__ import annotations

from enum import Enum

from bandwidth.core.storage.models import COMPUTED_DATA, HEALTH_DATA


class Aggregation(str, Enum):
    """How the biometric source folds a day of samples into one value."""

    SUM = "sum"
    AVERAGE = "average"
    DERIVED = "derived"  # computed from samples/segments, not a plain statistic
    NONE = "none"        # computed score, never read from the source


class MetricKind(str, Enum):
    # Raw signals
    RESTING_HEART_RATE = "rhr"
    HEART_RATE_VARIABILITY = "hrv"
    ACTIVE_ENERGY = "activeEnergy"
    EXERCISE_MINUTES = "exerciseMinutes"
    STEPS = "steps"
    ELEVATED_HEART_RATE_TIME = "elevatedHeartRateTime"
    SLEEP_TIME = "sleepTime"

    # Computed scores
    HEART_RATE_COMPONENT = "heartRateComponent"
    EXERCISE_COMPONENT = "exerciseComponent"
    SLEEP_COMPONENT = "sleepComponent"
    BANDWIDTH = "bandwidth"

    @property
    def cache_key(self) -> str:
        return self.value

    @property
    def is_computed(self) -> bool:
        return self in _COMPUTED

    @property
    def should_cache(self) -> bool:
        return self in _CACHED

    @property
    def namespace(self) -> str:
        """Document collection the kind is stored in."""
        return COMPUTED_DATA if self.is_computed else HEALTH_DATA

    @property
    def aggregation(self) -> Aggregation:
        return _AGGREGATION[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_COMPUTED = frozenset({
    MetricKind.HEART_RATE_COMPONENT,
    MetricKind.EXERCISE_COMPONENT,
    MetricKind.SLEEP_COMPONENT,
    MetricKind.BANDWIDTH,
})

# All kinds currently cache; kept explicit so a non-cached kind is a one-line change.
_CACHED = frozenset(MetricKind)

_AGGREGATION = {
    MetricKind.RESTING_HEART_RATE: Aggregation.AVERAGE,
    MetricKind.HEART_RATE_VARIABILITY: Aggregation.AVERAGE,
    MetricKind.ACTIVE_ENERGY: Aggregation.SUM,
    MetricKind.EXERCISE_MINUTES: Aggregation.SUM,
    MetricKind.STEPS: Aggregation.SUM,
    MetricKind.ELEVATED_HEART_RATE_TIME: Aggregation.DERIVED,
    MetricKind.SLEEP_TIME: Aggregation.DERIVED,
    MetricKind.HEART_RATE_COMPONENT: Aggregation.NONE,
    MetricKind.EXERCISE_COMPONENT: Aggregation.NONE,
    MetricKind.SLEEP_COMPONENT: Aggregation.NONE,
    MetricKind.BANDWIDTH: Aggregation.NONE,
}

_DISPLAY_NAMES = {
    MetricKind.RESTING_HEART_RATE: "Resting Heart Rate",
    MetricKind.HEART_RATE_VARIABILITY: "Heart Rate Variability",
    MetricKind.ACTIVE_ENERGY: "Calories Burned",
    MetricKind.EXERCISE_MINUTES: "Active Minutes",
    MetricKind.STEPS: "Step Count",
    MetricKind.ELEVATED_HEART_RATE_TIME: "Elevated Heart Rate",
    MetricKind.SLEEP_TIME: "Sleep",
    MetricKind.HEART_RATE_COMPONENT: "Heart Rate",
    MetricKind.EXERCISE_COMPONENT: "Exercise",
    MetricKind.SLEEP_COMPONENT: "Sleep",
    MetricKind.BANDWIDTH: "Bandwidth",
}

RAW_KINDS = tuple(k for k in MetricKind if not k.is_computed)
COMPUTED_KINDS = tuple(k for k in MetricKind if k.is_computed)

# Kinds the source can answer with a single daily statistic
AGGREGATE_KINDS = tuple(
    k for k in MetricKind if k.aggregation in (Aggregation.SUM, Aggregation.AVERAGE)
)


def parse_metric_kind(value: str) -> MetricKind:
    """Look up a kind by cache key or enum name (case-insensitive for names)."""
    try:
        return MetricKind(value)
    except ValueError:
        pass
    try:
        return MetricKind[value.upper()]
    except KeyError:
        valid = ", ".join(k.value for k in MetricKind)
        raise ValueError(f"Unknown metric kind: {value!r}. Valid: {valid}") from None
