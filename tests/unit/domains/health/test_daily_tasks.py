"""Tests for daily task scheduling and the per-session orchestrator."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta

from bandwidth.core.storage.models import TASK_COMPLETED, TASK_FAILED, TASK_PENDING
from bandwidth.domains.health.domain_logic.daily_tasks import schedule_daily_tasks
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind

TODAY = date(2026, 2, 10)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestScheduler:
    def test_one_pending_task_per_user(self, repository, clock, paired_users, caplog):
        repository.create_task("alice", "2026-02-09T00:30:00+00:00")
        with caplog.at_level(logging.INFO):
            tasks = schedule_daily_tasks(repository, clock)

        assert sorted(t.user_id for t in tasks) == ["alice", "bob"]
        assert all(t.status == TASK_PENDING for t in tasks)
        assert repository.get_latest_pending_task("alice").id in {t.id for t in tasks}
        assert "Tasks updated for 2 users" in caplog.text

    def test_no_users(self, repository, clock):
        assert schedule_daily_tasks(repository, clock) == []


class TestProcessing:
    def test_completes_task_with_score(self, session, repository, paired_users, clock, audit_logger):
        task = repository.create_task("alice", clock.now().isoformat())

        finished = _run(session.orchestrator.process_pending())

        assert finished.id == task.id
        assert finished.status == TASK_COMPLETED
        assert finished.score == session.store.get("alice", MetricKind.BANDWIDTH, TODAY)
        assert finished.processed_at is not None
        assert session.orchestrator.last_processed_date == TODAY
        assert session.orchestrator.last_error is None

        event = audit_logger.get_events(action="task_processed")[0]
        assert event["status"] == "success"
        assert event["subject_id"] == task.id
        assert '"alerted":false' in event["metadata_json"]

    def test_scores_the_task_day(self, session, repository, paired_users):
        repository.create_task("alice", "2026-02-08T10:00:00+00:00")
        _run(session.orchestrator.process_pending())
        assert session.store.get("alice", MetricKind.BANDWIDTH, date(2026, 2, 8)) is not None
        assert session.store.get("alice", MetricKind.BANDWIDTH, TODAY) is None
        assert session.orchestrator.last_processed_date == date(2026, 2, 8)

    def test_unparseable_timestamp_scores_today(self, session, repository, paired_users):
        repository.create_task("alice", "yesterday-ish")
        finished = _run(session.orchestrator.process_pending())
        assert finished.status == TASK_COMPLETED
        assert session.orchestrator.last_processed_date == TODAY

    def test_latest_pending_task_only(self, session, repository, paired_users):
        repository.create_task("alice", "2026-02-08T10:00:00+00:00")
        latest = repository.create_task("alice", "2026-02-09T10:00:00+00:00")
        assert _run(session.orchestrator.process_pending()).id == latest.id

    def test_other_users_tasks_ignored(self, session, repository, paired_users):
        repository.create_task("bob")
        assert _run(session.orchestrator.process_pending()) is None

    def test_nothing_pending(self, session):
        assert _run(session.orchestrator.process_pending()) is None

    def test_failure_marks_task_failed(self, session, repository, paired_users, mock_source, audit_logger):
        repository.create_task("alice")
        mock_source.unavailable = True

        finished = _run(session.orchestrator.process_pending())

        assert finished.status == TASK_FAILED
        assert "unavailable" in finished.error
        assert session.orchestrator.last_error.startswith("Failed to process daily task:")
        assert session.orchestrator.last_processed_date is None
        assert session.orchestrator.is_processing is False

        event = audit_logger.get_events(action="task_processed")[0]
        assert event["status"] == "failure"
        assert event["error_type"] == "SourceUnavailableError"

    def test_no_signed_in_user(self, session, identity, repository):
        repository.create_task("alice")
        identity.sign_out()
        assert _run(session.orchestrator.process_pending()) is None
        assert session.orchestrator.last_error == "No authenticated user"

    def test_concurrent_trigger_is_ignored(self, session, repository, paired_users):
        repository.create_task("alice")

        async def both():
            return await asyncio.gather(
                session.orchestrator.process_pending(),
                session.orchestrator.process_pending(),
            )

        first, second = _run(both())
        assert first.status == TASK_COMPLETED
        assert second is None

    def test_callback_receives_finished_task(self, session, repository, paired_users):
        seen = []
        session.orchestrator.on_task_completed = seen.append
        repository.create_task("alice")
        _run(session.orchestrator.process_pending())
        assert [t.status for t in seen] == [TASK_COMPLETED]

    def test_low_score_alerts_partner(self, session, repository, paired_users, frozen_now, audit_logger):
        for offset in range(1, 6):
            session.store.put("alice", MetricKind.BANDWIDTH, TODAY - timedelta(days=offset), float(offset))
        frozen_now.set(16, 30)
        repository.create_task("alice", frozen_now().isoformat())

        finished = _run(session.orchestrator.process_pending())

        # No source data: today's score is 0, the lowest of the history
        assert finished.score == 0.0
        assert len(repository.get_alerts("bob")) == 1
        event = audit_logger.get_events(action="task_processed")[0]
        assert '"alerted":true' in event["metadata_json"]


class TestListener:
    def test_requires_signed_in_user(self, session, identity):
        identity.sign_out()
        assert session.orchestrator.start_listening() is False
        assert session.orchestrator.last_error == "No authenticated user"
        assert session.orchestrator.is_listening is False

    def test_processes_pending_tasks_until_stopped(self, session, repository, paired_users):
        task = repository.create_task("alice")

        async def listen():
            assert session.orchestrator.start_listening() is True
            assert session.orchestrator.is_listening is True
            for _ in range(100):
                await asyncio.sleep(0.01)
                if repository.get_task(task.id).status != TASK_PENDING:
                    break
            session.orchestrator.stop_listening()
            await asyncio.sleep(0)
            return session.orchestrator.is_listening

        assert _run(listen()) is False
        assert repository.get_task(task.id).status == TASK_COMPLETED
