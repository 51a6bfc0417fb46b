"""Biometric connectors — abstraction layer over the platform health-data API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind

ASLEEP = "asleep"
IN_BED = "inBed"


class SourceUnavailableError(Exception):
    """Raised when the biometric source cannot answer a query."""


@dataclass(frozen=True)
class SleepSegment:
    """A contiguous sleep-analysis interval."""

    start: datetime
    end: datetime
    state: str  # 'asleep' | 'inBed'

    @property
    def seconds(self) -> float:
        return max(0.0, (self.end - self.start).total_seconds())


@dataclass(frozen=True)
class HeartRateSample:
    timestamp: datetime
    bpm: float


@dataclass(frozen=True)
class ExerciseInterval:
    """A workout interval; heart-rate samples inside it are not 'elevated'."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@runtime_checkable
class BiometricSource(Protocol):
    """Abstract interface for raw per-day biometric retrieval.

    Scorers call these methods without knowing whether data comes from a
    live device, an Apple Health export, or deterministic fixtures. Every
    method raises SourceUnavailableError when the source cannot answer.
    """

    async def daily_aggregate(self, kind: MetricKind, day: date) -> float:
        """Sum or average of one kind over a calendar day (0 when no samples)."""
        ...

    async def sleep_segments(self, day: date) -> list[SleepSegment]:
        ...

    async def heart_rate_samples(self, day: date) -> list[HeartRateSample]:
        """Heart-rate samples for the day, ordered by timestamp."""
        ...

    async def exercise_intervals(self, day: date) -> list[ExerciseInterval]:
        ...

    @property
    def data_source(self) -> str:
        """Label for the active source: 'apple_health' or 'mock'."""
        ...
