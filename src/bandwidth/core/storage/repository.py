"""Bandwidth repository — document, user, alert, task and settings storage.

The repository mediates between domain objects and the SQLite database.
Day documents follow the ``users/{user}/{collection}/{day}`` scheme and are
merge-upserted field by field; ``healthData`` documents are encrypted with
FieldEncryptor, ``computedData`` documents are stored as plain JSON.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from bandwidth.core.storage.database import BandwidthDatabase
from bandwidth.core.storage.encryption import EncryptionError, FieldEncryptor
from bandwidth.core.storage.models import (
    ALERT_READ,
    COLLECTIONS,
    HEALTH_DATA,
    TASK_PENDING,
    AlertRecord,
    DailyTask,
    MetricDocument,
    UserProfile,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class BandwidthRepository:
    """Storage repository for day documents, users, alerts, tasks and settings.

    Usage::

        db = BandwidthDatabase(":memory:")
        db.initialize()
        repo = BandwidthRepository(db, FieldEncryptor(key))

        repo.merge_document("u1", "computedData", "2026-02-01", {"bandwidth": 3.2})
        doc = repo.get_document("u1", "computedData", "2026-02-01")
    """

    def __init__(self, database: BandwidthDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @property
    def database(self) -> BandwidthDatabase:
        return self._db

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise RepositoryError(
                f"Invalid collection: {collection!r}. Valid: {COLLECTIONS}"
            )

    # ------------------------------------------------------------------
    # Day documents
    # ------------------------------------------------------------------

    def get_document(self, user_id: str, collection: str, day: str) -> MetricDocument | None:
        """Read one day document, decrypting ``healthData`` fields.

        Raises:
            EncryptionError: If a stored ``healthData`` document cannot be decrypted.
        """
        self._check_collection(collection)
        row = self._db.connection.execute(
            """SELECT * FROM metric_documents
               WHERE user_id = ? AND collection = ? AND day = ?""",
            (user_id, collection, day),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def merge_document(
        self,
        user_id: str,
        collection: str,
        day: str,
        fields: dict[str, Any],
    ) -> MetricDocument:
        """Merge fields into a day document, creating it if needed.

        Existing fields not named in ``fields`` are kept. A ``timestamp``
        field is stamped on every write.
        """
        self._check_collection(collection)
        if not user_id:
            raise RepositoryError("user_id must not be empty")

        merged = self._existing_fields(user_id, collection, day)
        now = self._now_iso()
        merged.update(fields)
        merged["timestamp"] = now

        if collection == HEALTH_DATA:
            fields_enc, fields_json = self._enc.encrypt(merged), None
        else:
            fields_enc, fields_json = None, json.dumps(merged, separators=(",", ":"))

        conn = self._db.connection
        conn.execute(
            """INSERT INTO metric_documents (user_id, collection, day, fields_enc, fields_json, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id, collection, day) DO UPDATE SET
                   fields_enc = excluded.fields_enc,
                   fields_json = excluded.fields_json,
                   updated_at = excluded.updated_at""",
            (user_id, collection, day, fields_enc, fields_json, now),
        )
        conn.commit()
        logger.debug(
            "Merged %s into users/%s/%s/%s", sorted(fields), user_id, collection, day
        )
        return MetricDocument(
            user_id=user_id, collection=collection, day=day, fields=merged, updated_at=now
        )

    def get_documents(
        self,
        user_id: str,
        collection: str,
        *,
        since: str | None = None,
        until: str | None = None,
        limit: int = 400,
    ) -> list[MetricDocument]:
        """Query day documents in a day range (inclusive), oldest first."""
        self._check_collection(collection)
        conditions = ["user_id = ?", "collection = ?"]
        params: list[Any] = [user_id, collection]

        if since:
            conditions.append("day >= ?")
            params.append(since)
        if until:
            conditions.append("day <= ?")
            params.append(until)

        where = " AND ".join(conditions)
        query = f"SELECT * FROM metric_documents WHERE {where} ORDER BY day ASC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_document(row) for row in rows]

    def count_documents(self, user_id: str | None = None) -> int:
        """Return the number of stored day documents."""
        if user_id:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM metric_documents WHERE user_id = ?", (user_id,)
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM metric_documents"
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def upsert_user(self, user: UserProfile) -> None:
        """Insert or update a user document."""
        conn = self._db.connection
        conn.execute(
            """INSERT INTO users (id, name, paired_with, device_token, time_zone)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   name = excluded.name,
                   paired_with = excluded.paired_with,
                   device_token = excluded.device_token,
                   time_zone = excluded.time_zone""",
            (user.id, user.name, user.paired_with, user.device_token, user.time_zone),
        )
        conn.commit()

    def get_user(self, user_id: str) -> UserProfile | None:
        row = self._db.connection.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> list[UserProfile]:
        rows = self._db.connection.execute(
            "SELECT * FROM users ORDER BY created_at ASC, id ASC"
        ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def set_device_token(self, user_id: str, token: str | None) -> bool:
        """Set or clear a user's push device token.

        Returns:
            True if the user exists and was updated.
        """
        conn = self._db.connection
        cursor = conn.execute(
            "UPDATE users SET device_token = ? WHERE id = ?", (token, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def add_alert(self, alert: AlertRecord) -> str:
        """Persist an alert in the recipient's collection and return its ID."""
        aid = alert.id or self._new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT INTO alerts
               (id, recipient_id, type, from_user_id, from_user_name,
                score, percentile, timestamp, status)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                aid,
                alert.recipient_id,
                alert.type,
                alert.from_user_id,
                alert.from_user_name,
                alert.score,
                alert.percentile,
                alert.timestamp or self._now_iso(),
                alert.status,
            ),
        )
        conn.commit()
        logger.info("Stored %s %s for user %s", alert.type, aid, alert.recipient_id)
        return aid

    def get_alerts(
        self,
        recipient_id: str,
        *,
        status: str | None = None,
        limit: int = 50,
    ) -> list[AlertRecord]:
        """List a user's alerts, newest first."""
        conditions = ["recipient_id = ?"]
        params: list[Any] = [recipient_id]
        if status:
            conditions.append("status = ?")
            params.append(status)

        where = " AND ".join(conditions)
        query = f"SELECT * FROM alerts WHERE {where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [
            AlertRecord(
                id=row["id"],
                recipient_id=row["recipient_id"],
                from_user_id=row["from_user_id"],
                from_user_name=row["from_user_name"],
                score=row["score"],
                percentile=row["percentile"],
                timestamp=row["timestamp"],
                type=row["type"],
                status=row["status"],
            )
            for row in rows
        ]

    def mark_alert_read(self, recipient_id: str, alert_id: str) -> bool:
        """Mark one of a user's alerts as read.

        Returns:
            True if the alert was found and updated.
        """
        conn = self._db.connection
        cursor = conn.execute(
            "UPDATE alerts SET status = ? WHERE id = ? AND recipient_id = ?",
            (ALERT_READ, alert_id, recipient_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Daily tasks
    # ------------------------------------------------------------------

    def create_task(self, user_id: str, timestamp: str | None = None) -> DailyTask:
        """Create a pending daily task for a user."""
        task = DailyTask(
            id=self._new_id(),
            user_id=user_id,
            timestamp=timestamp or self._now_iso(),
            created_at=self._now_iso(),
        )
        conn = self._db.connection
        conn.execute(
            """INSERT INTO daily_tasks (id, user_id, timestamp, status, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (task.id, task.user_id, task.timestamp, task.status, task.created_at),
        )
        conn.commit()
        return task

    def replace_daily_tasks(self, user_ids: list[str], timestamp: str) -> list[DailyTask]:
        """Delete every existing task and create one pending task per user."""
        conn = self._db.connection
        deleted = conn.execute("DELETE FROM daily_tasks").rowcount
        conn.commit()
        tasks = [self.create_task(uid, timestamp) for uid in user_ids]
        logger.info(
            "Replaced %d daily tasks with %d new pending tasks", deleted, len(tasks)
        )
        return tasks

    def get_task(self, task_id: str) -> DailyTask | None:
        row = self._db.connection.execute(
            "SELECT * FROM daily_tasks WHERE id = ?", (task_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def get_latest_pending_task(self, user_id: str) -> DailyTask | None:
        """Return the most recent pending task addressed to a user."""
        row = self._db.connection.execute(
            """SELECT * FROM daily_tasks
               WHERE user_id = ? AND status = ?
               ORDER BY timestamp DESC, created_at DESC LIMIT 1""",
            (user_id, TASK_PENDING),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def update_task(
        self,
        task_id: str,
        *,
        status: str,
        score: float | None = None,
        error: str | None = None,
    ) -> DailyTask:
        """Transition a task to a final status and stamp ``processed_at``."""
        conn = self._db.connection
        cursor = conn.execute(
            """UPDATE daily_tasks
               SET status = ?, score = ?, error = ?, processed_at = ?
               WHERE id = ?""",
            (status, score, error, self._now_iso(), task_id),
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise RepositoryError(f"Daily task not found: {task_id}")
        task = self.get_task(task_id)
        assert task is not None
        return task

    # ------------------------------------------------------------------
    # Score settings
    # ------------------------------------------------------------------

    def save_user_settings(self, user_id: str, settings: dict[str, Any]) -> None:
        conn = self._db.connection
        conn.execute(
            """INSERT INTO user_settings (user_id, settings_json, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   settings_json = excluded.settings_json,
                   updated_at = excluded.updated_at""",
            (user_id, json.dumps(settings, sort_keys=True), self._now_iso()),
        )
        conn.commit()

    def get_user_settings(self, user_id: str) -> dict[str, Any] | None:
        row = self._db.connection.execute(
            "SELECT settings_json FROM user_settings WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except (json.JSONDecodeError, TypeError):
            logger.warning("Stored settings for user %s are not valid JSON", user_id)
            return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _existing_fields(self, user_id: str, collection: str, day: str) -> dict[str, Any]:
        """Fields of the stored document, or ``{}`` when absent or unreadable.

        An unreadable document is overwritten by the next merge.
        """
        try:
            existing = self.get_document(user_id, collection, day)
        except (EncryptionError, json.JSONDecodeError):
            logger.warning(
                "Stored document users/%s/%s/%s is unreadable; replacing it",
                user_id, collection, day,
            )
            return {}
        if existing is None:
            return {}
        if not isinstance(existing.fields, dict):
            logger.warning(
                "Stored document users/%s/%s/%s is not a field map; replacing it",
                user_id, collection, day,
            )
            return {}
        return dict(existing.fields)

    def _row_to_document(self, row: Any) -> MetricDocument:
        if row["collection"] == HEALTH_DATA:
            fields = self._enc.decrypt(row["fields_enc"] or "") or {}
        else:
            fields = json.loads(row["fields_json"]) if row["fields_json"] else {}
        return MetricDocument(
            user_id=row["user_id"],
            collection=row["collection"],
            day=row["day"],
            fields=fields,
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_user(row: Any) -> UserProfile:
        return UserProfile(
            id=row["id"],
            name=row["name"] or "",
            paired_with=row["paired_with"],
            device_token=row["device_token"],
            time_zone=row["time_zone"],
            created_at=row["created_at"] or "",
        )

    @staticmethod
    def _row_to_task(row: Any) -> DailyTask:
        return DailyTask(
            id=row["id"],
            user_id=row["user_id"],
            timestamp=row["timestamp"],
            status=row["status"],
            score=row["score"],
            error=row["error"],
            processed_at=row["processed_at"],
            created_at=row["created_at"] or "",
        )
