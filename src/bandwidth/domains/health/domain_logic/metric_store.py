"""Per-user, per-day metric cache over the document repository.

Each value lives in the field named by its kind's cache key inside the day
document ``users/{user}/{healthData|computedData}/{YYYY-MM-DD}``. Writes
merge into the document and never remove other fields. There is no
eviction.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any

from bandwidth.core.storage.encryption import EncryptionError
from bandwidth.core.storage.repository import BandwidthRepository
from bandwidth.domains.health.domain_logic.metric_kinds import MetricKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricValue:
    user_id: str
    namespace: str
    kind: MetricKind
    day: date
    value: float
    written_at: str = ""


def _as_number(raw: Any) -> float | None:
    """Return a finite float for a stored field, or None if it is not one."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    value = float(raw)
    if math.isnan(value) or math.isinf(value):
        return None
    return value


class MetricStore:
    """Typed get/put/history access to cached metric values.

    Malformed stored data (undecryptable document, non-numeric field) is
    logged and reported as a cache miss; it never raises to the scorer.
    """

    def __init__(self, repository: BandwidthRepository) -> None:
        self._repo = repository

    def get(self, user_id: str, kind: MetricKind, day: date) -> float | None:
        fields = self._fields(user_id, kind.namespace, day)
        if fields is None or kind.cache_key not in fields:
            return None
        value = _as_number(fields[kind.cache_key])
        if value is None:
            logger.warning(
                "Invalid %s value in users/%s/%s/%s: %r",
                kind.cache_key, user_id, kind.namespace, day.isoformat(),
                fields[kind.cache_key],
            )
        return value

    def put(self, user_id: str, kind: MetricKind, day: date, value: float) -> None:
        """Merge one value into its day document.

        Raises:
            RepositoryError, EncryptionError: If the document cannot be written.
        """
        self._repo.merge_document(
            user_id, kind.namespace, day.isoformat(), {kind.cache_key: float(value)}
        )

    def history(
        self,
        user_id: str,
        kind: MetricKind,
        start: date,
        end: date,
    ) -> list[MetricValue]:
        """Return cached values for ``start``..``end`` inclusive, oldest first.

        Days with no valid value are skipped.
        """
        try:
            documents = self._repo.get_documents(
                user_id, kind.namespace, since=start.isoformat(), until=end.isoformat()
            )
        except (EncryptionError, json.JSONDecodeError) as exc:
            logger.warning(
                "Unreadable %s history for user %s: %s", kind.namespace, user_id, exc
            )
            return []

        values: list[MetricValue] = []
        for doc in documents:
            value = _as_number(doc.fields.get(kind.cache_key))
            if value is None:
                continue
            values.append(MetricValue(
                user_id=user_id,
                namespace=kind.namespace,
                kind=kind,
                day=date.fromisoformat(doc.day),
                value=value,
                written_at=str(doc.fields.get("timestamp", doc.updated_at)),
            ))
        return values

    def _fields(self, user_id: str, namespace: str, day: date) -> dict[str, Any] | None:
        try:
            doc = self._repo.get_document(user_id, namespace, day.isoformat())
        except (EncryptionError, json.JSONDecodeError) as exc:
            logger.warning(
                "Unreadable document users/%s/%s/%s: %s",
                user_id, namespace, day.isoformat(), exc,
            )
            return None
        if doc is None:
            return None
        if not isinstance(doc.fields, dict):
            logger.warning(
                "Malformed document users/%s/%s/%s", user_id, namespace, day.isoformat()
            )
            return None
        return doc.fields
