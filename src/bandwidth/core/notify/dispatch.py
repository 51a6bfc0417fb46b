"""Push notification dispatch — fire-and-forget delivery to a device token.

Delivery itself is owned by an external push gateway. This module only
classifies failures: an invalid or unregistered token is reported with
``invalid_token=True`` so the caller can clear the stored token.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

# Gateway error codes that mean the device token is no longer usable
_INVALID_TOKEN_CODES = {
    "messaging/invalid-registration-token",
    "messaging/registration-token-not-registered",
    "invalid-registration-token",
    "registration-token-not-registered",
    "unregistered",
    "BadDeviceToken",
    "Unregistered",
}


class NotificationError(Exception):
    """Raised when a push notification could not be delivered."""

    def __init__(self, message: str, *, invalid_token: bool = False) -> None:
        super().__init__(message)
        self.invalid_token = invalid_token


@runtime_checkable
class NotificationDispatch(Protocol):
    """Abstract push delivery channel."""

    async def send(
        self,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        ...


class LoggingNotificationDispatch:
    """Dispatch that only logs. Used when no push gateway is configured."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(
        self,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.sent.append(
            {"device_token": device_token, "title": title, "body": body, "data": data or {}}
        )
        logger.info("Push (not delivered, no gateway configured): %s — %s", title, body)


class WebhookNotificationDispatch:
    """Posts notifications to an HTTP push gateway.

    Usage::

        dispatch = WebhookNotificationDispatch("https://push.example/send", token="...")
        await dispatch.send(device_token, "Bandwidth Alert", body, {"alertId": aid})
    """

    def __init__(
        self,
        gateway_url: str,
        *,
        token: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not gateway_url:
            raise ValueError("gateway_url must not be empty")
        self._url = gateway_url
        self._token = token
        self._timeout = timeout
        self._client = client

    async def send(
        self,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        payload = {
            "token": device_token,
            "notification": {"title": title, "body": body},
            "data": {k: str(v) for k, v in (data or {}).items()},
        }
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}

        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Push gateway unreachable: {exc}") from exc

        if response.status_code < 400:
            logger.debug("Push delivered (HTTP %d)", response.status_code)
            return

        code = _error_code(response)
        invalid = response.status_code in (404, 410) or code in _INVALID_TOKEN_CODES
        raise NotificationError(
            f"Push gateway rejected notification: HTTP {response.status_code}"
            + (f" ({code})" if code else ""),
            invalid_token=invalid,
        )


def _error_code(response: httpx.Response) -> str:
    """Extract a provider error code from a gateway error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict):
        return ""
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("code") or error.get("status") or "")
    if isinstance(error, str):
        return error
    return str(body.get("code") or body.get("reason") or "")
