"""Tests for the AuditLogger."""

from __future__ import annotations

import json

from bandwidth.core.audit.logger import AuditEvent, AuditLogger
from bandwidth.core.storage.database import BandwidthDatabase


class TestLogEvent:
    def test_returns_uuid(self, audit_logger):
        event_id = audit_logger.log_event(AuditEvent(action="task_processed"))
        assert len(event_id) == 36

    def test_metadata_serialized(self, audit_logger):
        audit_logger.log_event(AuditEvent(action="x", metadata={"day": "2026-02-01"}))
        row = audit_logger.get_events(action="x")[0]
        assert json.loads(row["metadata_json"]) == {"day": "2026-02-01"}

    def test_write_failure_is_swallowed(self):
        db = BandwidthDatabase(":memory:")
        db.initialize()
        logger = AuditLogger(db)
        db.close()
        assert logger.log_event(AuditEvent(action="x")) == ""


class TestHelpers:
    def test_log_task(self, audit_logger):
        audit_logger.log_task(
            user_id="alice", task_id="t1", status="failure",
            duration_ms=12.5, error_type="SourceUnavailableError",
        )
        row = audit_logger.get_events(action="task_processed")[0]
        assert row["subject_id"] == "t1"
        assert row["status"] == "failure"
        assert row["error_type"] == "SourceUnavailableError"
        assert row["partner_disclosed"] == 0

    def test_log_alert_marks_disclosure(self, audit_logger):
        audit_logger.log_alert(user_id="alice", alert_id="a1", recipient_id="bob", delivered=False)
        row = audit_logger.get_events(action="alert_dispatched")[0]
        assert row["partner_disclosed"] == 1
        meta = json.loads(row["metadata_json"])
        assert meta == {"recipient_id": "bob", "push_delivered": False}

    def test_log_settings_rejected(self, audit_logger):
        audit_logger.log_settings_saved(
            user_id="alice", accepted=False, reason="Exercise weights must sum to 100%"
        )
        row = audit_logger.get_events(action="settings_saved")[0]
        assert row["status"] == "failure"
        assert row["error_type"] == "SettingsInvalidError"


class TestQueries:
    def test_filter_by_user(self, audit_logger):
        audit_logger.log_task(user_id="alice", task_id="t1")
        audit_logger.log_task(user_id="bob", task_id="t2")
        assert [e["subject_id"] for e in audit_logger.get_events(user_id="bob")] == ["t2"]

    def test_counts(self, audit_logger):
        audit_logger.log_task(user_id="alice", task_id="t1")
        audit_logger.log_alert(user_id="alice", alert_id="a1", recipient_id="bob", delivered=True)
        audit_logger.log_alert(user_id="bob", alert_id="a2", recipient_id="alice", delivered=True)

        assert audit_logger.count_events() == 3
        assert audit_logger.count_disclosures() == 2
        assert audit_logger.count_disclosures(user_id="alice") == 1

    def test_since_filter(self, audit_logger):
        audit_logger.log_task(user_id="alice", task_id="t1")
        assert audit_logger.count_events(since="2999-01-01T00:00:00+00:00") == 0
