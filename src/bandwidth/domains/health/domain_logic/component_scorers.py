"""Component scorers: heart rate, exercise and sleep.

Each component is a recency-weighted sum over today, yesterday and two days
ago of the day's relative deviation from the user's baseline. A positive
value means the day cost more "bandwidth" than usual. Component scores are
cached per day under the component's metric kind.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta

from bandwidth.domains.health.domain_logic.baseline import BaselineCalculator
from bandwidth.domains.health.domain_logic.daily_metrics import DailyMetricFetcher
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind
from bandwidth.domains.health.domain_logic.metric_store import MetricStore
from bandwidth.domains.health.domain_logic.score_settings import (
    EXERCISE,
    HEART_RATE,
    RECENT_DAY_KEYS,
    SLEEP,
    ScoreSettings,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0
BASELINE_SLEEP_SECONDS = 8 * 3600.0


class ScoringInvariantError(Exception):
    """Raised when validated settings are missing a weight the scorer needs."""


def require_weight(weights: dict[str, float], key: str, label: str) -> float:
    try:
        return weights[key]
    except KeyError:
        raise ScoringInvariantError(f"{label} weight {key!r} is missing") from None


def deviation(baseline: float, delta: float) -> float:
    """``delta / baseline``, or 0 against a zero baseline."""
    if baseline == 0:
        return 0.0
    return delta / baseline


def non_exercise_seconds(exercise_minutes: float) -> float:
    return max(0.0, SECONDS_PER_DAY - exercise_minutes * 60)


class ComponentScorer:
    """Base class: cache check, three-day recency loop, cache write.

    Subclasses set ``kind`` and ``category`` and implement
    :meth:`_baselines` and :meth:`_day_deviation`.
    """

    kind: MetricKind
    category: str

    def __init__(
        self,
        fetcher: DailyMetricFetcher,
        baselines: BaselineCalculator,
        store: MetricStore,
    ) -> None:
        self._fetcher = fetcher
        self._baselines_calc = baselines
        self._store = store

    async def score(self, day: date, user_id: str, settings: ScoreSettings) -> float:
        cached = self._store.get(user_id, self.kind, day)
        if cached is not None:
            return cached

        recency = [
            require_weight(settings.recent_days_weights, key, "Recent days")
            for key in RECENT_DAY_KEYS
        ]
        baseline = await self._baselines(user_id, settings)
        deviations = await asyncio.gather(*(
            self._day_deviation(user_id, day - timedelta(days=days_ago), baseline, settings)
            for days_ago in range(len(RECENT_DAY_KEYS))
        ))
        total = sum(d * w / 100 for d, w in zip(deviations, recency))

        self._store.put(user_id, self.kind, day, total)
        logger.debug("%s for user %s on %s: %.4f", self.kind.value, user_id, day, total)
        return total

    async def _baselines(self, user_id: str, settings: ScoreSettings) -> dict[MetricKind, float]:
        return {}

    async def _day_deviation(
        self,
        user_id: str,
        day: date,
        baseline: dict[MetricKind, float],
        settings: ScoreSettings,
    ) -> float:
        raise NotImplementedError

    async def _baseline_map(
        self, user_id: str, kinds: tuple[MetricKind, ...], settings: ScoreSettings
    ) -> dict[MetricKind, float]:
        values = await asyncio.gather(*(
            self._baselines_calc.baseline(
                user_id,
                kind,
                settings.averaging_period_days,
                elevated_threshold=settings.elevated_heart_rate_threshold,
            )
            for kind in kinds
        ))
        return dict(zip(kinds, values))


class HeartRateScorer(ComponentScorer):
    kind = MetricKind.HEART_RATE_COMPONENT
    category = HEART_RATE

    async def _baselines(self, user_id: str, settings: ScoreSettings) -> dict[MetricKind, float]:
        return await self._baseline_map(
            user_id,
            (MetricKind.HEART_RATE_VARIABILITY, MetricKind.RESTING_HEART_RATE),
            settings,
        )

    async def _day_deviation(
        self,
        user_id: str,
        day: date,
        baseline: dict[MetricKind, float],
        settings: ScoreSettings,
    ) -> float:
        weights = settings.heart_rate_weights
        w_variability = require_weight(weights, "variability", "Heart rate")
        w_resting = require_weight(weights, "resting", "Heart rate")
        w_elevated = require_weight(weights, "elevated", "Heart rate")

        hrv, rhr, elevated_time, exercise_minutes = await asyncio.gather(
            self._fetcher.daily_metric(user_id, MetricKind.HEART_RATE_VARIABILITY, day),
            self._fetcher.daily_metric(user_id, MetricKind.RESTING_HEART_RATE, day),
            self._fetcher.elevated_heart_rate_time(
                user_id, day, threshold=settings.elevated_heart_rate_threshold
            ),
            self._fetcher.daily_metric(user_id, MetricKind.EXERCISE_MINUTES, day),
        )

        b_hrv = baseline[MetricKind.HEART_RATE_VARIABILITY]
        b_rhr = baseline[MetricKind.RESTING_HEART_RATE]
        hrv_term = deviation(b_hrv, b_hrv - hrv)
        rhr_term = deviation(b_rhr, rhr - b_rhr)
        awake = non_exercise_seconds(exercise_minutes)
        elevated_term = elevated_time / awake if awake > 0 else 0.0

        return (
            hrv_term * w_variability + rhr_term * w_resting + elevated_term * w_elevated
        ) / 100


class ExerciseScorer(ComponentScorer):
    kind = MetricKind.EXERCISE_COMPONENT
    category = EXERCISE

    _KINDS = (MetricKind.EXERCISE_MINUTES, MetricKind.STEPS, MetricKind.ACTIVE_ENERGY)

    async def _baselines(self, user_id: str, settings: ScoreSettings) -> dict[MetricKind, float]:
        return await self._baseline_map(user_id, self._KINDS, settings)

    async def _day_deviation(
        self,
        user_id: str,
        day: date,
        baseline: dict[MetricKind, float],
        settings: ScoreSettings,
    ) -> float:
        weights = settings.exercise_weights
        w_minutes = require_weight(weights, "minutes", "Exercise")
        w_steps = require_weight(weights, "steps", "Exercise")
        w_calories = require_weight(weights, "calories", "Exercise")

        minutes, steps, calories = await asyncio.gather(*(
            self._fetcher.daily_metric(user_id, kind, day) for kind in self._KINDS
        ))

        # Less activity than usual raises the score
        b_minutes = baseline[MetricKind.EXERCISE_MINUTES]
        b_steps = baseline[MetricKind.STEPS]
        b_calories = baseline[MetricKind.ACTIVE_ENERGY]
        return (
            deviation(b_minutes, b_minutes - minutes) * w_minutes
            + deviation(b_steps, b_steps - steps) * w_steps
            + deviation(b_calories, b_calories - calories) * w_calories
        ) / 100


class SleepScorer(ComponentScorer):
    """Deviation from a fixed 8 hour sleep baseline."""

    kind = MetricKind.SLEEP_COMPONENT
    category = SLEEP

    async def _day_deviation(
        self,
        user_id: str,
        day: date,
        baseline: dict[MetricKind, float],
        settings: ScoreSettings,
    ) -> float:
        sleep_time, _ = await self._fetcher.sleep_metrics(user_id, day)
        return (BASELINE_SLEEP_SECONDS - sleep_time) / BASELINE_SLEEP_SECONDS


def default_scorers(
    fetcher: DailyMetricFetcher,
    baselines: BaselineCalculator,
    store: MetricStore,
) -> dict[str, ComponentScorer]:
    """One scorer per settings category."""
    return {
        cls.category: cls(fetcher, baselines, store)
        for cls in (SleepScorer, ExerciseScorer, HeartRateScorer)
    }
