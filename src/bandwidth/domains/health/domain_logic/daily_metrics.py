"""Per-day raw metric fetch with read-through caching.

Today's values are still accumulating, so they are always pulled from the
biometric source; past days are served from the MetricStore when cached
and written through on a miss. Cache writes are best-effort: a storage
failure is logged and the freshly computed value is still returned.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable

from bandwidth.core.clock import DayClock
from bandwidth.domains.health.connectors import (
    ASLEEP,
    IN_BED,
    BiometricSource,
    ExerciseInterval,
    HeartRateSample,
    SleepSegment,
)
from bandwidth.domains.health.domain_logic.metric_kinds import Aggregation, MetricKind
from bandwidth.domains.health.domain_logic.metric_store import MetricStore

logger = logging.getLogger(__name__)

DEFAULT_ELEVATED_THRESHOLD = 75.0


def compute_sleep_totals(segments: list[SleepSegment]) -> tuple[float, float]:
    """Return ``(sleep_seconds, in_bed_seconds)``.

    Asleep time counts toward both totals; in-bed time only toward in-bed.
    """
    sleep_time = 0.0
    in_bed_time = 0.0
    for segment in segments:
        if segment.state == ASLEEP:
            sleep_time += segment.seconds
            in_bed_time += segment.seconds
        elif segment.state == IN_BED:
            in_bed_time += segment.seconds
    return sleep_time, in_bed_time


def compute_elevated_time(
    samples: list[HeartRateSample],
    exercise: list[ExerciseInterval],
    threshold_pct: float,
    day_length_seconds: float,
) -> float:
    """Seconds spent above ``threshold_pct`` of the day's max heart rate outside workouts.

    Each elevated sample is credited with the gap to the next sample. The
    last sample, if elevated, is credited with the average sample spacing
    over the whole day.
    """
    if not samples:
        return 0.0

    ordered = sorted(samples, key=lambda s: s.timestamp)
    target = max(s.bpm for s in ordered) * threshold_pct / 100

    def elevated(sample: HeartRateSample) -> bool:
        return sample.bpm > target and not any(
            interval.contains(sample.timestamp) for interval in exercise
        )

    total = 0.0
    for current, following in zip(ordered, ordered[1:]):
        if elevated(current):
            total += (following.timestamp - current.timestamp).total_seconds()

    if elevated(ordered[-1]):
        total += day_length_seconds / len(ordered)
    return total


class DailyMetricFetcher:
    """Fetches one raw metric for one user and day.

    Usage::

        fetcher = DailyMetricFetcher(source, store, clock)
        steps = await fetcher.daily_metric("u1", MetricKind.STEPS, day)
        sleep, in_bed = await fetcher.sleep_metrics("u1", day)
    """

    def __init__(self, source: BiometricSource, store: MetricStore, clock: DayClock) -> None:
        self._source = source
        self._store = store
        self._clock = clock

    async def daily_metric(
        self,
        user_id: str,
        kind: MetricKind,
        day: date,
        *,
        elevated_threshold: float = DEFAULT_ELEVATED_THRESHOLD,
    ) -> float:
        """Return the day's value for any raw kind.

        Raises:
            SourceUnavailableError: If the source cannot answer on a cache miss.
            ValueError: If ``kind`` is a computed score.
        """
        if kind.is_computed:
            raise ValueError(f"{kind.value} is a computed score, not a raw metric")
        if kind is MetricKind.SLEEP_TIME:
            sleep_time, _ = await self.sleep_metrics(user_id, day)
            return sleep_time
        if kind is MetricKind.ELEVATED_HEART_RATE_TIME:
            return await self.elevated_heart_rate_time(
                user_id, day, threshold=elevated_threshold
            )
        if kind.aggregation is Aggregation.DERIVED:
            raise ValueError(f"No derivation registered for {kind.value}")

        return await self._read_through(
            user_id, kind, day, lambda: self._source.daily_aggregate(kind, day)
        )

    async def sleep_metrics(self, user_id: str, day: date) -> tuple[float, float]:
        """Return ``(sleep_seconds, in_bed_seconds)`` for the day.

        Only sleep time is cached, so a cache hit reports in-bed time as 0.
        """
        kind = MetricKind.SLEEP_TIME
        if not self._clock.is_today(day):
            cached = self._store.get(user_id, kind, day)
            if cached is not None:
                return cached, 0.0

        segments = await self._source.sleep_segments(day)
        sleep_time, in_bed_time = compute_sleep_totals(segments)
        self._write(user_id, kind, day, sleep_time)
        return sleep_time, in_bed_time

    async def elevated_heart_rate_time(
        self,
        user_id: str,
        day: date,
        *,
        threshold: float = DEFAULT_ELEVATED_THRESHOLD,
    ) -> float:
        """Seconds of elevated, non-exercise heart rate during the day."""

        async def derive() -> float:
            samples, exercise = await asyncio.gather(
                self._source.heart_rate_samples(day),
                self._source.exercise_intervals(day),
            )
            start, end = self._clock.day_bounds(day)
            return compute_elevated_time(
                samples, exercise, threshold, (end - start).total_seconds()
            )

        return await self._read_through(
            user_id, MetricKind.ELEVATED_HEART_RATE_TIME, day, derive
        )

    # ------------------------------------------------------------------

    async def _read_through(
        self,
        user_id: str,
        kind: MetricKind,
        day: date,
        fetch: Callable[[], Awaitable[float]],
    ) -> float:
        if kind.should_cache and not self._clock.is_today(day):
            cached = self._store.get(user_id, kind, day)
            if cached is not None:
                return cached

        value = float(await fetch())
        if kind.should_cache:
            self._write(user_id, kind, day, value)
        return value

    def _write(self, user_id: str, kind: MetricKind, day: date, value: float) -> None:
        try:
            self._store.put(user_id, kind, day, value)
        except Exception:
            logger.exception(
                "Failed to cache %s for user %s on %s", kind.cache_key, user_id, day
            )
