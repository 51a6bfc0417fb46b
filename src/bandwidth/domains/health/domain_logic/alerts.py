"""Low-bandwidth alert dispatch to a user's paired partner."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from bandwidth.core.audit.logger import AuditLogger
from bandwidth.core.notify.dispatch import NotificationDispatch, NotificationError
from bandwidth.core.storage.models import AlertRecord
from bandwidth.core.storage.repository import BandwidthRepository

logger = logging.getLogger(__name__)

ALERT_TITLE = "Bandwidth Alert"


class AlertDispatchError(Exception):
    """Raised when an alert cannot be created."""


class AlertDispatcher:
    """Creates the partner's alert document and pushes a notification.

    The alert document is the source of truth; push delivery is
    best-effort. A push rejected for an invalid device token clears the
    partner's stored token.

    Usage::

        dispatcher = AlertDispatcher(repository, LoggingNotificationDispatch())
        alert = await dispatcher.dispatch_low_score("u1", score=2.4, percentile=0.1)
    """

    def __init__(
        self,
        repository: BandwidthRepository,
        notifier: NotificationDispatch,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._repo = repository
        self._notifier = notifier
        self._audit = audit_logger

    async def dispatch_low_score(
        self,
        user_id: str,
        score: float,
        percentile: float,
    ) -> AlertRecord | None:
        """Alert ``user_id``'s partner about a low score.

        Returns:
            The stored alert, or None when the user has no partner.

        Raises:
            AlertDispatchError: If the user is unknown or the alert cannot be stored.
        """
        user = self._repo.get_user(user_id)
        if user is None:
            raise AlertDispatchError(f"Unknown user: {user_id}")
        if not user.paired_with:
            logger.info("User %s has no partner; low score alert skipped", user_id)
            return None

        alert = AlertRecord(
            id="",
            recipient_id=user.paired_with,
            from_user_id=user_id,
            from_user_name=user.name or "Your partner",
            score=score,
            percentile=percentile,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        try:
            alert.id = self._repo.add_alert(alert)
        except Exception as exc:
            raise AlertDispatchError(f"Failed to store alert: {exc}") from exc

        delivered = await self._push(alert)
        if self._audit is not None:
            self._audit.log_alert(
                user_id=user_id,
                alert_id=alert.id,
                recipient_id=alert.recipient_id,
                delivered=delivered,
                metadata={"percentile": round(percentile, 4)},
            )
        return alert

    async def _push(self, alert: AlertRecord) -> bool:
        partner = self._repo.get_user(alert.recipient_id)
        if partner is None or not partner.device_token:
            logger.info("No device token for user %s; alert stored only", alert.recipient_id)
            return False

        try:
            await self._notifier.send(
                partner.device_token,
                ALERT_TITLE,
                alert.message,
                {"alertId": alert.id, "type": alert.type, "fromUserId": alert.from_user_id},
            )
        except NotificationError as exc:
            if exc.invalid_token:
                logger.warning(
                    "Device token for user %s is invalid; clearing it", alert.recipient_id
                )
                self._repo.set_device_token(alert.recipient_id, None)
            else:
                logger.error("Push for alert %s failed: %s", alert.id, exc)
            return False
        return True
