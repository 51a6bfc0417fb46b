"""Percentile ranking of today's score against recent history, with windowed alerting.

Analysis only runs inside two daily windows (16:00–17:00 and 18:00–19:00
reference time, both bounds inclusive). Each window raises at most one
alert per calendar day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from bandwidth.core.clock import DayClock
from bandwidth.core.storage.models import AlertRecord
from bandwidth.domains.health.domain_logic.alerts import AlertDispatcher
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind
from bandwidth.domains.health.domain_logic.metric_store import MetricStore
from bandwidth.domains.health.domain_logic.score_settings import SettingsRegistry

logger = logging.getLogger(__name__)

LOW_PERCENTILE = 0.20


@dataclass(frozen=True)
class AlertWindow:
    name: str
    start_minute: int
    end_minute: int

    def contains(self, minute: int) -> bool:
        return self.start_minute <= minute <= self.end_minute


ALERT_WINDOWS = (
    AlertWindow("early", 16 * 60, 17 * 60),
    AlertWindow("late", 18 * 60, 19 * 60),
)


@dataclass
class PercentileResult:
    score: float
    percentile: float
    history_size: int
    window: str
    alert: AlertRecord | None = None

    @property
    def is_low(self) -> bool:
        return self.percentile <= LOW_PERCENTILE


def percentile_rank(current: float, history: list[float]) -> float | None:
    """Index of the first sorted value ≥ ``current``, as a fraction of the history size.

    ``[10, 20, 30, 40, 50]`` ranks 11 at 0.2 and 10 at 0.0. Returns None for
    an empty history.
    """
    if not history:
        return None
    ordered = sorted(history)
    position = next((i for i, v in enumerate(ordered) if v >= current), len(ordered))
    return position / len(ordered)


class PercentileAnalyzer:
    """Decides whether a freshly computed score warrants a partner alert.

    Errors while reading history or dispatching are logged and kept in
    ``last_error``; they never propagate to the caller.
    """

    def __init__(
        self,
        store: MetricStore,
        dispatcher: AlertDispatcher,
        settings_registry: SettingsRegistry,
        clock: DayClock,
        windows: tuple[AlertWindow, ...] = ALERT_WINDOWS,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings_registry
        self._clock = clock
        self._windows = windows
        self._last_alert_day: dict[str, date] = {}
        self.last_error: str | None = None

    def active_window(self) -> AlertWindow | None:
        minute = self._clock.minutes_since_midnight()
        for window in self._windows:
            if window.contains(minute):
                return window
        return None

    def last_alert_day(self, window_name: str) -> date | None:
        return self._last_alert_day.get(window_name)

    async def analyze(self, user_id: str, current_score: float, day: date) -> PercentileResult | None:
        """Rank ``current_score`` and alert the partner when it is in the lowest 20%.

        Returns None outside the alert windows, when the active window
        already alerted today, or when there is no history to rank against.
        """
        window = self.active_window()
        if window is None:
            return None
        today = self._clock.today()
        if self._last_alert_day.get(window.name) == today:
            logger.debug("The %s alert window already fired on %s", window.name, today)
            return None

        try:
            period = self._settings.for_user(user_id).saved.averaging_period_days
            history = [
                v.value
                for v in self._store.history(
                    user_id, MetricKind.BANDWIDTH, day - timedelta(days=period), day
                )
            ]
            percentile = percentile_rank(current_score, history)
            if percentile is None:
                logger.info("No bandwidth history for user %s; skipping analysis", user_id)
                return None

            result = PercentileResult(
                score=current_score,
                percentile=percentile,
                history_size=len(history),
                window=window.name,
            )
            if result.is_low:
                result.alert = await self._dispatcher.dispatch_low_score(
                    user_id, current_score, percentile
                )
                if result.alert is not None:
                    self._last_alert_day[window.name] = today
            return result
        except Exception as exc:
            logger.exception("Percentile analysis failed for user %s", user_id)
            self.last_error = f"Failed to analyze score: {exc}"
            return None
