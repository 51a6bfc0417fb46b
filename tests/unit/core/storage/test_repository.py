"""Tests for BandwidthRepository — documents, users, alerts, tasks, settings."""

from __future__ import annotations

import pytest

from bandwidth.core.storage.encryption import EncryptionError, FieldEncryptor
from bandwidth.core.storage.models import (
    ALERT_READ,
    ALERT_UNREAD,
    COMPUTED_DATA,
    HEALTH_DATA,
    TASK_COMPLETED,
    TASK_PENDING,
    AlertRecord,
    UserProfile,
)
from bandwidth.core.storage.repository import BandwidthRepository, RepositoryError


class TestDocuments:
    def test_merge_creates_document_with_timestamp(self, repository):
        doc = repository.merge_document("alice", COMPUTED_DATA, "2026-02-01", {"bandwidth": 3.2})
        assert doc.path == "users/alice/computedData/2026-02-01"
        assert doc.fields["bandwidth"] == 3.2
        assert "timestamp" in doc.fields

    def test_merge_keeps_other_fields(self, repository):
        repository.merge_document("alice", HEALTH_DATA, "2026-02-01", {"rhr": 61.0})
        repository.merge_document("alice", HEALTH_DATA, "2026-02-01", {"hrv": 44.0})
        doc = repository.get_document("alice", HEALTH_DATA, "2026-02-01")
        assert doc.fields["rhr"] == 61.0
        assert doc.fields["hrv"] == 44.0

    def test_merge_overwrites_same_field(self, repository):
        repository.merge_document("alice", COMPUTED_DATA, "2026-02-01", {"bandwidth": 1.0})
        repository.merge_document("alice", COMPUTED_DATA, "2026-02-01", {"bandwidth": 2.0})
        doc = repository.get_document("alice", COMPUTED_DATA, "2026-02-01")
        assert doc.fields["bandwidth"] == 2.0
        assert repository.count_documents("alice") == 1

    def test_health_data_encrypted_at_rest(self, repository, bandwidth_db):
        repository.merge_document("alice", HEALTH_DATA, "2026-02-01", {"rhr": 61.0})
        row = bandwidth_db.connection.execute(
            "SELECT fields_enc, fields_json FROM metric_documents WHERE collection = ?",
            (HEALTH_DATA,),
        ).fetchone()
        assert row["fields_json"] is None
        assert row["fields_enc"].startswith("gAAAAA")

    def test_computed_data_stored_as_json(self, repository, bandwidth_db):
        repository.merge_document("alice", COMPUTED_DATA, "2026-02-01", {"bandwidth": 0.5})
        row = bandwidth_db.connection.execute(
            "SELECT fields_enc, fields_json FROM metric_documents WHERE collection = ?",
            (COMPUTED_DATA,),
        ).fetchone()
        assert row["fields_enc"] is None
        assert '"bandwidth":0.5' in row["fields_json"]

    def test_wrong_key_raises_on_read(self, repository, bandwidth_db):
        repository.merge_document("alice", HEALTH_DATA, "2026-02-01", {"rhr": 61.0})
        other = BandwidthRepository(bandwidth_db, FieldEncryptor(FieldEncryptor.generate_key()))
        with pytest.raises(EncryptionError):
            other.get_document("alice", HEALTH_DATA, "2026-02-01")

    def test_missing_document_is_none(self, repository):
        assert repository.get_document("alice", COMPUTED_DATA, "2026-02-01") is None

    def test_invalid_collection_raises(self, repository):
        with pytest.raises(RepositoryError, match="Invalid collection"):
            repository.merge_document("alice", "alerts", "2026-02-01", {"x": 1})

    def test_empty_user_raises(self, repository):
        with pytest.raises(RepositoryError, match="user_id"):
            repository.merge_document("", COMPUTED_DATA, "2026-02-01", {"x": 1})

    @pytest.mark.parametrize("stored", ["{not json", "[1, 2]"])
    def test_merge_replaces_corrupt_computed_document(self, repository, bandwidth_db, stored):
        bandwidth_db.connection.execute(
            """INSERT INTO metric_documents (user_id, collection, day, fields_enc, fields_json, updated_at)
               VALUES (?, ?, ?, NULL, ?, ?)""",
            ("alice", COMPUTED_DATA, "2026-02-01", stored, "2026-02-01T00:00:00+00:00"),
        )
        bandwidth_db.connection.commit()

        doc = repository.merge_document("alice", COMPUTED_DATA, "2026-02-01", {"bandwidth": 0.5})
        assert set(doc.fields) == {"bandwidth", "timestamp"}
        stored_doc = repository.get_document("alice", COMPUTED_DATA, "2026-02-01")
        assert stored_doc.fields["bandwidth"] == 0.5

    def test_merge_replaces_undecryptable_health_document(self, repository, bandwidth_db):
        other = BandwidthRepository(bandwidth_db, FieldEncryptor(FieldEncryptor.generate_key()))
        other.merge_document("alice", HEALTH_DATA, "2026-02-01", {"rhr": 61.0})

        doc = repository.merge_document("alice", HEALTH_DATA, "2026-02-01", {"steps": 900.0})
        assert "rhr" not in doc.fields
        assert repository.get_document("alice", HEALTH_DATA, "2026-02-01").fields["steps"] == 900.0

    def test_range_query_is_inclusive_and_ordered(self, repository):
        for day in ("2026-02-03", "2026-02-01", "2026-02-02", "2026-02-05"):
            repository.merge_document("alice", COMPUTED_DATA, day, {"bandwidth": 1.0})
        repository.merge_document("bob", COMPUTED_DATA, "2026-02-02", {"bandwidth": 9.0})

        docs = repository.get_documents(
            "alice", COMPUTED_DATA, since="2026-02-01", until="2026-02-03"
        )
        assert [d.day for d in docs] == ["2026-02-01", "2026-02-02", "2026-02-03"]


class TestUsers:
    def test_upsert_and_get(self, repository):
        repository.upsert_user(UserProfile(id="alice", name="Alice", paired_with="bob"))
        user = repository.get_user("alice")
        assert user.name == "Alice"
        assert user.paired_with == "bob"
        assert user.device_token is None

    def test_upsert_updates(self, repository):
        repository.upsert_user(UserProfile(id="alice", name="Alice"))
        repository.upsert_user(UserProfile(id="alice", name="Alice B", paired_with="bob"))
        assert repository.get_user("alice").name == "Alice B"
        assert len(repository.list_users()) == 1

    def test_set_and_clear_device_token(self, repository):
        repository.upsert_user(UserProfile(id="bob", name="Bob", device_token="tok"))
        assert repository.set_device_token("bob", None) is True
        assert repository.get_user("bob").device_token is None

    def test_set_token_for_unknown_user(self, repository):
        assert repository.set_device_token("nobody", "tok") is False


class TestAlerts:
    def _alert(self, **overrides) -> AlertRecord:
        values = dict(
            id="",
            recipient_id="bob",
            from_user_id="alice",
            from_user_name="Alice",
            score=2.5,
            percentile=0.1,
            timestamp="2026-02-01T16:30:00+00:00",
        )
        values.update(overrides)
        return AlertRecord(**values)

    def test_add_and_list(self, repository):
        aid = repository.add_alert(self._alert())
        alerts = repository.get_alerts("bob")
        assert [a.id for a in alerts] == [aid]
        assert alerts[0].status == ALERT_UNREAD
        assert alerts[0].message == (
            "Today, Alice's Bandwidth score is in the lowest 20% of historical data."
        )

    def test_filter_by_status(self, repository):
        first = repository.add_alert(self._alert())
        repository.add_alert(self._alert(timestamp="2026-02-02T16:30:00+00:00"))
        assert repository.mark_alert_read("bob", first) is True

        unread = repository.get_alerts("bob", status=ALERT_UNREAD)
        read = repository.get_alerts("bob", status=ALERT_READ)
        assert len(unread) == 1
        assert [a.id for a in read] == [first]

    def test_only_recipient_can_mark_read(self, repository):
        aid = repository.add_alert(self._alert())
        assert repository.mark_alert_read("alice", aid) is False

    def test_newest_first(self, repository):
        repository.add_alert(self._alert(timestamp="2026-02-01T16:30:00+00:00"))
        newest = repository.add_alert(self._alert(timestamp="2026-02-03T16:30:00+00:00"))
        assert repository.get_alerts("bob")[0].id == newest


class TestDailyTasks:
    def test_create_and_get_latest_pending(self, repository):
        repository.create_task("alice", "2026-02-01T00:30:00+00:00")
        latest = repository.create_task("alice", "2026-02-02T00:30:00+00:00")
        repository.create_task("bob", "2026-02-03T00:30:00+00:00")

        task = repository.get_latest_pending_task("alice")
        assert task.id == latest.id
        assert task.status == TASK_PENDING

    def test_update_task_stamps_processed_at(self, repository):
        task = repository.create_task("alice")
        updated = repository.update_task(task.id, status=TASK_COMPLETED, score=1.25)
        assert updated.status == TASK_COMPLETED
        assert updated.score == 1.25
        assert updated.processed_at is not None
        assert repository.get_latest_pending_task("alice") is None

    def test_update_missing_task_raises(self, repository):
        with pytest.raises(RepositoryError, match="not found"):
            repository.update_task("missing", status=TASK_COMPLETED)

    def test_replace_daily_tasks(self, repository):
        old = repository.create_task("alice")
        tasks = repository.replace_daily_tasks(["alice", "bob"], "2026-02-02T00:30:00+00:00")
        assert len(tasks) == 2
        assert repository.get_task(old.id) is None
        assert {t.user_id for t in tasks} == {"alice", "bob"}


class TestSettings:
    def test_save_and_load(self, repository):
        repository.save_user_settings("alice", {"sleep_enabled": True})
        assert repository.get_user_settings("alice") == {"sleep_enabled": True}

    def test_missing_settings(self, repository):
        assert repository.get_user_settings("alice") is None
