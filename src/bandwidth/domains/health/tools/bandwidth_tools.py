"""MCP tools for bandwidth scores, baselines, daily tasks and partner alerts.

Scores are computed on demand for the signed-in user and cached per day;
repeated calls for the same day are served from the cache.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from datetime import date, timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from bandwidth.core.auth.identity import UnauthenticatedError, require_user
from bandwidth.core.storage.database import DatabaseError
from bandwidth.core.storage.encryption import EncryptionError
from bandwidth.core.storage.models import ALERT_READ, ALERT_UNREAD
from bandwidth.core.storage.repository import RepositoryError
from bandwidth.domains.health.connectors import SourceUnavailableError
from bandwidth.domains.health.domain_logic.component_scorers import ScoringInvariantError
from bandwidth.domains.health.domain_logic.daily_tasks import schedule_daily_tasks
from bandwidth.domains.health.domain_logic.metric_kinds import (
    COMPUTED_KINDS,
    MetricKind,
    parse_metric_kind,
)

if TYPE_CHECKING:
    from bandwidth.domains.health.domain_logic.session import ScoringSession

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (RepositoryError, DatabaseError, EncryptionError)


def _error(message: str, **extra) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


def _parse_day(value: str, today: date) -> date:
    """'' → today; otherwise an ISO calendar day."""
    if not value:
        return today
    return date.fromisoformat(value)


def register_bandwidth_tools(mcp: FastMCP, session: ScoringSession) -> None:
    """Register score, history, baseline, task and alert tools on the MCP server."""

    clock = session.clock

    @mcp.tool
    async def bandwidth_score(ctx: Context, day: str = "") -> str:
        """Compute (or read from cache) the bandwidth score for a day.

        The score is a weighted combination of heart-rate, exercise and sleep
        components, each comparing the last three days against your baseline.
        Higher means a more demanding day than usual.

        Args:
            day: Calendar day as YYYY-MM-DD (default: today).
        """
        try:
            target = _parse_day(day, clock.today())
        except ValueError:
            return _error(f"Invalid day {day!r}; expected YYYY-MM-DD")

        start_time = time.monotonic()
        try:
            user_id = require_user(session.identity)
            score = await session.aggregator.bandwidth_score(target, user_id)
            enabled = session.settings.for_user(user_id).saved.enabled_categories
        except UnauthenticatedError as exc:
            return _error(str(exc))
        except (SourceUnavailableError, ScoringInvariantError) as exc:
            logger.error("Bandwidth score failed for %s: %s", target, exc)
            return _error(f"Could not compute score: {exc}", day=target.isoformat())
        except _STORAGE_ERRORS as exc:
            logger.exception("Storage failure while scoring %s", target)
            return _error(f"Storage error: {exc}", day=target.isoformat())

        components = {
            kind.cache_key: session.store.get(user_id, kind, target)
            for kind in COMPUTED_KINDS
            if kind is not MetricKind.BANDWIDTH
        }
        return json.dumps({
            "status": "ok",
            "user_id": user_id,
            "day": target.isoformat(),
            "bandwidth": round(score, 6),
            "components": {k: v for k, v in components.items() if v is not None},
            "enabled_categories": enabled,
            "duration_ms": round((time.monotonic() - start_time) * 1000, 1),
        }, indent=2)

    @mcp.tool
    async def bandwidth_history(ctx: Context, days: int = 30) -> str:
        """List cached bandwidth scores for recent days, oldest first.

        Never computes missing days; run bandwidth_score for those.

        Args:
            days: Number of days to look back, including today (default: 30).
        """
        if days < 1:
            return _error("days must be at least 1")
        try:
            user_id = require_user(session.identity)
        except UnauthenticatedError as exc:
            return _error(str(exc))

        today = clock.today()
        values = session.store.history(
            user_id, MetricKind.BANDWIDTH, today - timedelta(days=days - 1), today
        )
        return json.dumps({
            "status": "ok",
            "period_days": days,
            "days_with_score": len(values),
            "scores": [{"day": v.day.isoformat(), "bandwidth": v.value} for v in values],
        }, indent=2)

    @mcp.tool
    async def metric_baseline(ctx: Context, kind: str, days: int = 0) -> str:
        """Rolling average of a raw metric over the days ending yesterday.

        Args:
            kind: Metric cache key, e.g. 'rhr', 'hrv', 'steps', 'sleepTime'.
            days: Window length (default: your averaging period setting).
        """
        try:
            metric = parse_metric_kind(kind)
        except ValueError as exc:
            return _error(str(exc))
        if metric.is_computed:
            return _error(f"{metric.value} is a computed score and has no baseline")

        try:
            user_id = require_user(session.identity)
            settings = session.settings.for_user(user_id).saved
            window = days or settings.averaging_period_days
            value = await session.baselines.baseline(
                user_id,
                metric,
                window,
                elevated_threshold=settings.elevated_heart_rate_threshold,
            )
        except UnauthenticatedError as exc:
            return _error(str(exc))
        except SourceUnavailableError as exc:
            return _error(f"Biometric source unavailable: {exc}")
        except _STORAGE_ERRORS as exc:
            logger.exception("Storage failure while reading the %s baseline", metric.value)
            return _error(f"Storage error: {exc}")

        return json.dumps({
            "status": "ok",
            "kind": metric.value,
            "display_name": metric.display_name,
            "days": window,
            "baseline": value,
        })

    @mcp.tool
    async def process_daily_task(ctx: Context, schedule: bool = False) -> str:
        """Process your most recent pending daily task.

        Computes the task day's score, ranks it against recent history and,
        inside the afternoon alert windows, alerts your partner about an
        unusually low score.

        Args:
            schedule: First replace all tasks with one pending task per user.
        """
        if schedule:
            created = schedule_daily_tasks(session.repository, clock)
            logger.info("Scheduled %d daily tasks", len(created))

        orchestrator = session.orchestrator
        task = await orchestrator.process_pending()
        if task is None:
            return json.dumps({
                "status": "busy" if orchestrator.is_processing else "idle",
                "last_error": orchestrator.last_error,
                "message": "No pending task was processed.",
            })
        return json.dumps({
            "status": task.status,
            "task": asdict(task),
            "last_error": orchestrator.last_error,
            "analysis_error": session.analyzer.last_error,
        }, indent=2)

    @mcp.tool
    async def list_alerts(ctx: Context, status: str = ALERT_UNREAD, limit: int = 20) -> str:
        """List low-bandwidth alerts your partner's scores raised for you.

        Args:
            status: 'unread', 'read' or 'all' (default: unread).
            limit: Maximum number of alerts (default: 20).
        """
        if status not in (ALERT_UNREAD, ALERT_READ, "all"):
            return _error("status must be 'unread', 'read' or 'all'")
        try:
            user_id = require_user(session.identity)
        except UnauthenticatedError as exc:
            return _error(str(exc))

        alerts = session.repository.get_alerts(
            user_id, status=None if status == "all" else status, limit=limit
        )
        return json.dumps({
            "status": "ok",
            "count": len(alerts),
            "alerts": [{**asdict(a), "message": a.message} for a in alerts],
        }, indent=2)

    @mcp.tool
    async def mark_alert_read(ctx: Context, alert_id: str) -> str:
        """Mark one of your alerts as read.

        Args:
            alert_id: The alert's ID from list_alerts.
        """
        try:
            user_id = require_user(session.identity)
        except UnauthenticatedError as exc:
            return _error(str(exc))

        if session.repository.mark_alert_read(user_id, alert_id):
            return json.dumps({"status": "read", "alert_id": alert_id})
        return json.dumps({
            "status": "not_found",
            "alert_id": alert_id,
            "message": "No alert found with that ID.",
        })
