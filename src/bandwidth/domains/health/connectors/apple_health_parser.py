"""Apple Health XML export parser.

Parses the ``export.xml`` file produced by Apple Health (iOS → Share → Export
Health Data) into per-day samples. Supports incremental parsing of large
files via iterparse.

HealthKit type mappings:
- HKQuantityTypeIdentifierRestingHeartRate → rhr (daily average)
- HKQuantityTypeIdentifierHeartRateVariabilitySDNN → hrv (daily average)
- HKQuantityTypeIdentifierActiveEnergyBurned → activeEnergy (daily sum)
- HKQuantityTypeIdentifierAppleExerciseTime → exerciseMinutes (daily sum)
- HKQuantityTypeIdentifierStepCount → steps (daily sum)
- HKQuantityTypeIdentifierHeartRate → heart-rate samples
- HKCategoryTypeIdentifierSleepAnalysis → sleep segments
- Workout → exercise intervals
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from pathlib import Path

from bandwidth.domains.health.connectors import (
    ASLEEP,
    IN_BED,
    ExerciseInterval,
    HeartRateSample,
    SleepSegment,
)

logger = logging.getLogger(__name__)

# HealthKit quantity type identifiers
_HR = "HKQuantityTypeIdentifierHeartRate"
_RESTING_HR = "HKQuantityTypeIdentifierRestingHeartRate"
_HRV = "HKQuantityTypeIdentifierHeartRateVariabilitySDNN"
_ACTIVE_ENERGY = "HKQuantityTypeIdentifierActiveEnergyBurned"
_EXERCISE_TIME = "HKQuantityTypeIdentifierAppleExerciseTime"
_STEPS = "HKQuantityTypeIdentifierStepCount"

_SLEEP = "HKCategoryTypeIdentifierSleepAnalysis"

# Quantity types folded into a daily statistic, by metric cache key
QUANTITY_TYPE_KEYS = {
    _RESTING_HR: "rhr",
    _HRV: "hrv",
    _ACTIVE_ENERGY: "activeEnergy",
    _EXERCISE_TIME: "exerciseMinutes",
    _STEPS: "steps",
}

_IN_BED_VALUE = "HKCategoryValueSleepAnalysisInBed"
_ASLEEP_PREFIX = "HKCategoryValueSleepAnalysisAsleep"


class AppleHealthParseError(Exception):
    """Raised when parsing Apple Health export XML fails."""


@dataclass
class ParsedExport:
    """Per-day view of an Apple Health export.

    ``quantities`` maps a metric cache key to ``{day: [values]}``.
    """

    quantities: dict[str, dict[date, list[float]]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(list))
    )
    heart_rate: dict[date, list[HeartRateSample]] = field(
        default_factory=lambda: defaultdict(list)
    )
    sleep: dict[date, list[SleepSegment]] = field(
        default_factory=lambda: defaultdict(list)
    )
    workouts: dict[date, list[ExerciseInterval]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def values(self, key: str, day: date) -> list[float]:
        by_day = self.quantities.get(key)
        if not by_day:
            return []
        return list(by_day.get(day, []))


def _parse_date(date_str: str) -> datetime:
    """Parse Apple Health date format: '2025-12-01 08:30:00 -0500'."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        # Fallback for ISO format
        return datetime.fromisoformat(date_str)


def _local_day(moment: datetime, tz: tzinfo) -> date:
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def _sleep_state(value: str) -> str | None:
    if value == _IN_BED_VALUE:
        return IN_BED
    if value.startswith(_ASLEEP_PREFIX):
        return ASLEEP
    return None  # Awake and unknown states are ignored


def parse_apple_health_export(export_path: str | Path, tz: tzinfo) -> ParsedExport:
    """Parse an Apple Health export.xml into per-day samples.

    Uses iterparse for memory-efficient processing of large exports.
    Samples are bucketed by the calendar day of their start in ``tz``.

    Raises:
        AppleHealthParseError: If the file is missing or not valid XML.
    """
    path = Path(export_path)
    if not path.exists():
        raise AppleHealthParseError(f"Export file not found: {path}")

    parsed = ParsedExport()
    skipped = 0

    try:
        for _event, elem in ET.iterparse(str(path), events=("end",)):
            tag = elem.tag

            if tag == "Record":
                rec_type = elem.get("type", "")
                try:
                    if rec_type in QUANTITY_TYPE_KEYS or rec_type == _HR:
                        start = _parse_date(elem.get("startDate", ""))
                        value = float(elem.get("value", ""))
                        day = _local_day(start, tz)
                        if rec_type == _HR:
                            parsed.heart_rate[day].append(HeartRateSample(start, value))
                        else:
                            parsed.quantities[QUANTITY_TYPE_KEYS[rec_type]][day].append(value)

                    elif rec_type == _SLEEP:
                        state = _sleep_state(elem.get("value", ""))
                        if state is not None:
                            start = _parse_date(elem.get("startDate", ""))
                            end = _parse_date(elem.get("endDate", ""))
                            parsed.sleep[_local_day(start, tz)].append(
                                SleepSegment(start, end, state)
                            )
                except (ValueError, TypeError):
                    skipped += 1
                elem.clear()

            elif tag == "Workout":
                try:
                    start = _parse_date(elem.get("startDate", ""))
                    end = _parse_date(elem.get("endDate", ""))
                    parsed.workouts[_local_day(start, tz)].append(ExerciseInterval(start, end))
                except (ValueError, TypeError):
                    skipped += 1
                elem.clear()

    except ET.ParseError as exc:
        raise AppleHealthParseError(f"Invalid XML: {exc}") from exc

    for samples in parsed.heart_rate.values():
        samples.sort(key=lambda s: s.timestamp)

    logger.info(
        "Parsed Apple Health export: %d quantity types, %d heart-rate days, "
        "%d sleep days, %d workout days (%d malformed records skipped)",
        len(parsed.quantities), len(parsed.heart_rate),
        len(parsed.sleep), len(parsed.workouts), skipped,
    )
    return parsed
