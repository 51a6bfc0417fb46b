"""Mock biometric data for development and testing.

All mock data represents a median healthy adult on an ordinary day — not
in crisis, not perfectly optimized. Every day looks the same, so a score
computed from mock data sits near zero deviation from its baseline.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo

from bandwidth.domains.health.connectors import (
    ASLEEP,
    IN_BED,
    ExerciseInterval,
    HeartRateSample,
    SleepSegment,
)

# Daily statistics by metric cache key
MOCK_DAILY_AGGREGATES: dict[str, float] = {
    "rhr": 62.0,
    "hrv": 45.0,
    "activeEnergy": 480.0,
    "exerciseMinutes": 35.0,
    "steps": 8200.0,
}


def get_mock_sleep_segments(day: date, tz: tzinfo) -> list[SleepSegment]:
    """Return 7 h asleep inside 7.5 h in bed, starting 23:00 the previous night."""
    bed = datetime.combine(day - timedelta(days=1), time(23, 0), tzinfo=tz)
    return [
        SleepSegment(bed, bed + timedelta(minutes=15), IN_BED),
        SleepSegment(bed + timedelta(minutes=15), bed + timedelta(hours=7, minutes=15), ASLEEP),
        SleepSegment(bed + timedelta(hours=7, minutes=15), bed + timedelta(hours=7, minutes=30), IN_BED),
    ]


def get_mock_exercise_intervals(day: date, tz: tzinfo) -> list[ExerciseInterval]:
    """Return one 35 minute workout at 07:00."""
    start = datetime.combine(day, time(7, 0), tzinfo=tz)
    return [ExerciseInterval(start, start + timedelta(minutes=35))]


def get_mock_heart_rate_samples(day: date, tz: tzinfo) -> list[HeartRateSample]:
    """Return one sample every 10 minutes: resting at night, a workout peak at 07:00."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    samples = []
    for i in range(144):
        moment = start + timedelta(minutes=10 * i)
        hour = moment.hour
        if hour < 6:
            bpm = 56.0
        elif hour == 7 and moment.minute < 40:
            bpm = 150.0
        elif 12 <= hour < 13:
            bpm = 115.0  # brisk walk, not logged as a workout
        else:
            bpm = 72.0
        samples.append(HeartRateSample(moment, bpm))
    return samples
