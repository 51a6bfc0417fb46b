"""Concrete BiometricSource implementations."""

from __future__ import annotations

from collections import Counter
from datetime import date, tzinfo
from zoneinfo import ZoneInfo

from bandwidth.domains.health.connectors import (
    ExerciseInterval,
    HeartRateSample,
    SleepSegment,
    SourceUnavailableError,
)
from bandwidth.domains.health.connectors.mock_data import (
    MOCK_DAILY_AGGREGATES,
    get_mock_exercise_intervals,
    get_mock_heart_rate_samples,
    get_mock_sleep_segments,
)
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind


class MockBiometricSource:
    """Uses mock data generators. Always available.

    Per-day overrides make the source deterministic for tests::

        source = MockBiometricSource()
        source.set_aggregate(MetricKind.HEART_RATE_VARIABILITY, day, 45.0)
        source.calls[("daily_aggregate", "hrv", day)]   # how often it was read
    """

    def __init__(self, tz: tzinfo | None = None, *, use_defaults: bool = True) -> None:
        self._tz = tz or ZoneInfo("UTC")
        self._use_defaults = use_defaults
        self._aggregates: dict[tuple[str, date], float] = {}
        self._sleep: dict[date, list[SleepSegment]] = {}
        self._heart_rate: dict[date, list[HeartRateSample]] = {}
        self._exercise: dict[date, list[ExerciseInterval]] = {}
        self.calls: Counter = Counter()
        self.unavailable = False

    @property
    def data_source(self) -> str:
        return "mock"

    # -- fixtures ----------------------------------------------------------

    def set_aggregate(self, kind: MetricKind, day: date, value: float) -> None:
        self._aggregates[(kind.cache_key, day)] = value

    def set_sleep(self, day: date, segments: list[SleepSegment]) -> None:
        self._sleep[day] = list(segments)

    def set_heart_rate(self, day: date, samples: list[HeartRateSample]) -> None:
        self._heart_rate[day] = sorted(samples, key=lambda s: s.timestamp)

    def set_exercise(self, day: date, intervals: list[ExerciseInterval]) -> None:
        self._exercise[day] = list(intervals)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    # -- BiometricSource ---------------------------------------------------

    async def daily_aggregate(self, kind: MetricKind, day: date) -> float:
        self._record("daily_aggregate", kind.cache_key, day)
        if (kind.cache_key, day) in self._aggregates:
            return self._aggregates[(kind.cache_key, day)]
        if self._use_defaults:
            return MOCK_DAILY_AGGREGATES.get(kind.cache_key, 0.0)
        return 0.0

    async def sleep_segments(self, day: date) -> list[SleepSegment]:
        self._record("sleep_segments", "sleep", day)
        if day in self._sleep:
            return list(self._sleep[day])
        return get_mock_sleep_segments(day, self._tz) if self._use_defaults else []

    async def heart_rate_samples(self, day: date) -> list[HeartRateSample]:
        self._record("heart_rate_samples", "heartRate", day)
        if day in self._heart_rate:
            return list(self._heart_rate[day])
        return get_mock_heart_rate_samples(day, self._tz) if self._use_defaults else []

    async def exercise_intervals(self, day: date) -> list[ExerciseInterval]:
        self._record("exercise_intervals", "exercise", day)
        if day in self._exercise:
            return list(self._exercise[day])
        return get_mock_exercise_intervals(day, self._tz) if self._use_defaults else []

    def _record(self, method: str, key: str, day: date) -> None:
        if self.unavailable:
            raise SourceUnavailableError("Mock source marked unavailable")
        self.calls[(method, key, day)] += 1
