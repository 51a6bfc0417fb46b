"""Apple Health biometric source — reads from exported Health data XML.

Users export via iOS Health app → Share → Export Health Data → produces
export.xml. This source parses that XML once and answers per-day queries
from the parsed buckets.
"""

from __future__ import annotations

import logging
import statistics
from datetime import date, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo

from bandwidth.domains.health.connectors import (
    ExerciseInterval,
    HeartRateSample,
    SleepSegment,
    SourceUnavailableError,
)
from bandwidth.domains.health.connectors.apple_health_parser import (
    AppleHealthParseError,
    ParsedExport,
    parse_apple_health_export,
)
from bandwidth.domains.health.domain_logic.metric_kinds import Aggregation, MetricKind

logger = logging.getLogger(__name__)


class AppleHealthSource:
    """BiometricSource backed by an Apple Health XML export.

    Usage::

        source = AppleHealthSource("/path/to/export.xml", ZoneInfo("Europe/Berlin"))
        steps = await source.daily_aggregate(MetricKind.STEPS, day)
    """

    def __init__(self, export_path: str, tz: tzinfo | None = None) -> None:
        self._export_path = export_path
        self._tz = tz or ZoneInfo("UTC")
        self._parsed: ParsedExport | None = None

    def is_connected(self) -> bool:
        """Check if the export file exists."""
        return bool(self._export_path) and Path(self._export_path).exists()

    @property
    def data_source(self) -> str:
        return "apple_health"

    async def daily_aggregate(self, kind: MetricKind, day: date) -> float:
        if kind.aggregation not in (Aggregation.SUM, Aggregation.AVERAGE):
            raise ValueError(f"{kind.value} has no daily statistic in the export")
        values = self._export().values(kind.cache_key, day)
        if not values:
            return 0.0
        if kind.aggregation is Aggregation.SUM:
            return float(sum(values))
        return float(statistics.mean(values))

    async def sleep_segments(self, day: date) -> list[SleepSegment]:
        return list(self._export().sleep.get(day, []))

    async def heart_rate_samples(self, day: date) -> list[HeartRateSample]:
        return list(self._export().heart_rate.get(day, []))

    async def exercise_intervals(self, day: date) -> list[ExerciseInterval]:
        return list(self._export().workouts.get(day, []))

    def _export(self) -> ParsedExport:
        """Parse the export on first use and keep the result."""
        if self._parsed is None:
            try:
                self._parsed = parse_apple_health_export(self._export_path, self._tz)
            except AppleHealthParseError as exc:
                logger.error("Failed to parse Apple Health export: %s", exc)
                raise SourceUnavailableError(str(exc)) from exc
        return self._parsed
