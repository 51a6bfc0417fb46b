"""Rolling-average baselines for raw metrics."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from bandwidth.core.clock import DayClock
from bandwidth.domains.health.domain_logic.daily_metrics import (
    DEFAULT_ELEVATED_THRESHOLD,
    DailyMetricFetcher,
)
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind

logger = logging.getLogger(__name__)


class BaselineCalculator:
    """Mean of a metric over the ``days`` calendar days ending yesterday.

    Non-positive values count as missing days, except for elevated
    heart-rate time where a zero is a real measurement. Returns 0 when no
    valid day exists; callers treat a zero baseline as "no deviation".
    Source errors propagate.
    """

    def __init__(self, fetcher: DailyMetricFetcher, clock: DayClock) -> None:
        self._fetcher = fetcher
        self._clock = clock

    async def baseline(
        self,
        user_id: str,
        kind: MetricKind,
        days: int,
        *,
        elevated_threshold: float = DEFAULT_ELEVATED_THRESHOLD,
    ) -> float:
        if days <= 0:
            return 0.0

        today = self._clock.today()
        window = [today - timedelta(days=offset) for offset in range(1, days + 1)]
        values = await asyncio.gather(*(
            self._fetcher.daily_metric(
                user_id, kind, day, elevated_threshold=elevated_threshold
            )
            for day in window
        ))

        if kind is MetricKind.ELEVATED_HEART_RATE_TIME:
            valid = list(values)
        else:
            valid = [v for v in values if v > 0]

        if not valid:
            logger.debug("No baseline data for %s (user %s, %d days)", kind.value, user_id, days)
            return 0.0
        return sum(valid) / len(valid)
