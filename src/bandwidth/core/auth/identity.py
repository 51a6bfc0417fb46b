"""Identity binding for a scoring session."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class UnauthenticatedError(Exception):
    """Raised when an operation needs a bound user and none is signed in."""


@runtime_checkable
class IdentityProvider(Protocol):
    """Answers which user the current session acts for."""

    def current_user_id(self) -> str | None:
        ...


class SessionIdentity:
    """In-process identity holder for a single session.

    Usage::

        identity = SessionIdentity("user-123")
        identity.current_user_id()   # "user-123"
        identity.sign_out()
        identity.current_user_id()   # None
    """

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id or None

    def current_user_id(self) -> str | None:
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must not be empty")
        self._user_id = user_id
        logger.info("Session bound to user %s", user_id)

    def sign_out(self) -> None:
        self._user_id = None
        logger.info("Session signed out")


def require_user(identity: IdentityProvider) -> str:
    """Return the bound user id or raise UnauthenticatedError."""
    user_id = identity.current_user_id()
    if not user_id:
        raise UnauthenticatedError("No authenticated user")
    return user_id
