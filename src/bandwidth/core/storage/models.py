"""Data models for the bandwidth persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

HEALTH_DATA = "healthData"
COMPUTED_DATA = "computedData"

COLLECTIONS = (HEALTH_DATA, COMPUTED_DATA)

# Task and alert status values
TASK_PENDING = "pending"
TASK_COMPLETED = "completed"
TASK_FAILED = "failed"

ALERT_UNREAD = "unread"
ALERT_READ = "read"

LOW_BANDWIDTH_ALERT = "lowBandwidthAlert"


def document_path(user_id: str, collection: str, day: str) -> str:
    """Return the canonical document path ``users/{user}/{collection}/{day}``."""
    return f"users/{user_id}/{collection}/{day}"


@dataclass
class MetricDocument:
    """One per-user, per-collection, per-day document of metric fields.

    Field names are metric cache keys (``rhr``, ``bandwidth``, ...) plus a
    ``timestamp`` stamped on every write.
    """

    user_id: str
    collection: str  # 'healthData' | 'computedData'
    day: str  # YYYY-MM-DD
    fields: dict[str, Any] = field(default_factory=dict)
    updated_at: str = ""

    @property
    def path(self) -> str:
        return document_path(self.user_id, self.collection, self.day)


@dataclass
class UserProfile:
    """The user document consulted for partner and device lookups."""

    id: str
    name: str = ""
    paired_with: str | None = None
    device_token: str | None = None
    time_zone: str | None = None
    created_at: str = ""


@dataclass
class AlertRecord:
    """A low-bandwidth alert stored in the recipient's alert collection."""

    id: str
    recipient_id: str
    from_user_id: str
    from_user_name: str
    score: float
    percentile: float
    timestamp: str  # ISO 8601
    type: str = LOW_BANDWIDTH_ALERT
    status: str = ALERT_UNREAD  # 'unread' | 'read'

    @property
    def message(self) -> str:
        return (
            f"Today, {self.from_user_name}'s Bandwidth score is in the "
            "lowest 20% of historical data."
        )


@dataclass
class DailyTask:
    """A once-per-run scoring request created by the scheduler."""

    id: str
    user_id: str
    timestamp: str  # ISO 8601
    status: str = TASK_PENDING  # 'pending' | 'completed' | 'failed'
    score: float | None = None
    error: str | None = None
    processed_at: str | None = None
    created_at: str = ""
