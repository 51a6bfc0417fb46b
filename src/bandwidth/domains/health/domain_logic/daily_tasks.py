"""Daily task scheduling and processing.

A scheduler replaces all tasks with one pending task per known user. Each
user's session runs a DailyTaskOrchestrator that polls for its most recent
pending task, computes the day's bandwidth score, runs percentile analysis
and records the outcome on the task.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date, datetime
from typing import Callable

from bandwidth.core.audit.logger import AuditLogger
from bandwidth.core.auth.identity import IdentityProvider, UnauthenticatedError, require_user
from bandwidth.core.clock import DayClock
from bandwidth.core.storage.models import TASK_COMPLETED, TASK_FAILED, DailyTask
from bandwidth.core.storage.repository import BandwidthRepository
from bandwidth.domains.health.domain_logic.bandwidth import BandwidthAggregator
from bandwidth.domains.health.domain_logic.percentile import PercentileAnalyzer

logger = logging.getLogger(__name__)

TaskCallback = Callable[[DailyTask], None]


def schedule_daily_tasks(repository: BandwidthRepository, clock: DayClock) -> list[DailyTask]:
    """Delete every existing task and create one pending task per user."""
    user_ids = [user.id for user in repository.list_users()]
    tasks = repository.replace_daily_tasks(user_ids, clock.now().isoformat())
    logger.info("Tasks updated for %d users", len(tasks))
    return tasks


class DailyTaskOrchestrator:
    """Processes the session user's pending daily tasks, one pass at a time.

    Usage::

        orchestrator = DailyTaskOrchestrator(identity, repo, aggregator, analyzer, clock)
        orchestrator.start_listening()     # inside a running event loop
        ...
        orchestrator.stop_listening()

    Status is pulled via ``is_processing``, ``last_error`` and
    ``last_processed_date``; finished tasks are pushed to
    ``on_task_completed``.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        repository: BandwidthRepository,
        aggregator: BandwidthAggregator,
        analyzer: PercentileAnalyzer,
        clock: DayClock,
        *,
        audit_logger: AuditLogger | None = None,
        poll_interval: float = 30.0,
        on_task_completed: TaskCallback | None = None,
    ) -> None:
        self._identity = identity
        self._repo = repository
        self._aggregator = aggregator
        self._analyzer = analyzer
        self._clock = clock
        self._audit = audit_logger
        self._poll_interval = poll_interval
        self.on_task_completed = on_task_completed

        self._processing = False
        self._listener: asyncio.Task | None = None
        self._current_pass: asyncio.Task | None = None
        self.last_error: str | None = None
        self.last_processed_date: date | None = None

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_listening(self) -> bool:
        return self._listener is not None and not self._listener.done()

    # ------------------------------------------------------------------
    # Listener
    # ------------------------------------------------------------------

    def start_listening(self) -> bool:
        """Start polling for pending tasks. Must be called from a running loop.

        Returns:
            False (with ``last_error`` set) when no user is signed in.
        """
        self.stop_listening()
        try:
            user_id = require_user(self._identity)
        except UnauthenticatedError as exc:
            self.last_error = str(exc)
            return False

        self._listener = asyncio.get_running_loop().create_task(self._listen())
        logger.info("Listening for daily tasks of user %s", user_id)
        return True

    def stop_listening(self) -> None:
        """Cancel the listener and any in-flight pass. Committed writes stay."""
        for task in (self._listener, self._current_pass):
            if task is not None and not task.done():
                task.cancel()
        self._listener = None

    async def _listen(self) -> None:
        while True:
            try:
                await self.process_pending()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Daily task listener error")
                self.last_error = f"Failed to listen for tasks: {exc}"
            await asyncio.sleep(self._poll_interval)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_pending(self) -> DailyTask | None:
        """Process the most recent pending task for the session user.

        Returns the finished task, or None when a pass is already running,
        nobody is signed in, or nothing is pending.
        """
        if self._processing:
            logger.debug("Daily task pass already in flight; trigger ignored")
            return None

        user_id = self._identity.current_user_id()
        if not user_id:
            self.last_error = "No authenticated user"
            return None

        task = self._repo.get_latest_pending_task(user_id)
        if task is None:
            return None

        self._processing = True
        self._current_pass = asyncio.ensure_future(self._process(task))
        try:
            return await self._current_pass
        finally:
            self._processing = False
            self._current_pass = None

    async def _process(self, task: DailyTask) -> DailyTask:
        started = time.monotonic()
        try:
            day = self._clock.day_of(datetime.fromisoformat(task.timestamp))
        except (TypeError, ValueError):
            logger.warning("Task %s has no usable timestamp; scoring today", task.id)
            day = self._clock.today()

        try:
            score = await self._aggregator.bandwidth_score(day, task.user_id)
            result = await self._analyzer.analyze(task.user_id, score, day)
            finished = self._repo.update_task(task.id, status=TASK_COMPLETED, score=score)
        except asyncio.CancelledError:
            logger.info("Daily task %s cancelled", task.id)
            raise
        except Exception as exc:
            logger.exception("Daily task %s failed", task.id)
            self.last_error = f"Failed to process daily task: {exc}"
            finished = self._mark_failed(task, exc)
            self._audit_task(task, day, started, error=exc)
        else:
            self.last_processed_date = day
            self.last_error = None
            self._audit_task(
                task, day, started, alerted=result is not None and result.alert is not None
            )

        if self.on_task_completed is not None:
            self.on_task_completed(finished)
        return finished

    def _mark_failed(self, task: DailyTask, exc: Exception) -> DailyTask:
        try:
            return self._repo.update_task(task.id, status=TASK_FAILED, error=str(exc))
        except Exception:
            logger.exception("Could not mark daily task %s as failed", task.id)
            task.status = TASK_FAILED
            task.error = str(exc)
            return task

    def _audit_task(
        self,
        task: DailyTask,
        day: date,
        started: float,
        *,
        alerted: bool = False,
        error: Exception | None = None,
    ) -> None:
        if self._audit is None:
            return
        self._audit.log_task(
            user_id=task.user_id,
            task_id=task.id,
            status="failure" if error else "success",
            duration_ms=round((time.monotonic() - started) * 1000, 1),
            error_type=type(error).__name__ if error else None,
            metadata={"day": day.isoformat(), "alerted": alerted},
        )
