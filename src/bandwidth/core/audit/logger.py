"""Audit logger — score computation, task outcome and partner disclosure trail.

Records every daily-task pass, settings change and alert dispatch in an
audit trail that carries no raw biometric values:

* ``subject_id``        — the task, alert or day the event is about.
* ``partner_disclosed`` — whether a score left this user's data and reached
  their paired partner (an alert was created for them).
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from bandwidth.core.storage.database import BandwidthDatabase

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# AuditEvent dataclass
# ---------------------------------------------------------------------------

@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'task_processed' | 'alert_dispatched' | 'settings_saved'
    user_id: str | None = None
    subject_id: str | None = None
    partner_disclosed: bool = False      # True if an alert about this user reached the partner
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# AuditLogger
# ---------------------------------------------------------------------------

class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately so no audit entry is lost on crash.

    Usage::

        audit = AuditLogger(database)
        audit.log_task(user_id="u1", task_id=task.id, status="success",
                       duration_ms=412.0, metadata={"day": "2026-02-01"})
    """

    def __init__(self, database: BandwidthDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID.

        A failed audit write is logged and reported as an empty ID; it never
        breaks the operation being audited.
        """
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"), default=str)
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, user_id, subject_id, partner_disclosed,
                    duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.user_id,
                    event.subject_id,
                    1 if event.partner_disclosed else 0,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event — event lost")
            return ""

        return event_id

    def log_task(
        self,
        *,
        user_id: str,
        task_id: str,
        status: str = "success",
        duration_ms: float | None = None,
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log the outcome of one daily-task processing pass."""
        return self.log_event(AuditEvent(
            action="task_processed",
            user_id=user_id,
            subject_id=task_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_alert(
        self,
        *,
        user_id: str,
        alert_id: str,
        recipient_id: str,
        delivered: bool,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log that a low-score alert about ``user_id`` was created for the partner."""
        return self.log_event(AuditEvent(
            action="alert_dispatched",
            user_id=user_id,
            subject_id=alert_id,
            partner_disclosed=True,
            metadata={
                **(metadata or {}),
                "recipient_id": recipient_id,
                "push_delivered": delivered,
            },
        ))

    def log_settings_saved(
        self,
        *,
        user_id: str,
        accepted: bool,
        reason: str = "",
    ) -> str:
        """Log a settings save attempt (accepted or rolled back)."""
        return self.log_event(AuditEvent(
            action="settings_saved",
            user_id=user_id,
            status="success" if accepted else "failure",
            error_type=None if accepted else "SettingsInvalidError",
            metadata={"reason": reason} if reason else {},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        """Count total audit events, optionally since a timestamp."""
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log"
            ).fetchone()
        return row[0]

    def count_disclosures(self, *, user_id: str | None = None, since: str | None = None) -> int:
        """Count alerts about a user that reached their partner.

        This answers: "How many times has my score been shared with my partner?"
        """
        conditions = ["partner_disclosed = 1"]
        params: list[Any] = []
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)
        row = self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log WHERE {' AND '.join(conditions)}",
            params,
        ).fetchone()
        return row[0]
