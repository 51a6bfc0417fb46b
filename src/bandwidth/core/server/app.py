"""Bandwidth MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastmcp import FastMCP

from bandwidth.core.audit.logger import AuditLogger
from bandwidth.core.auth.identity import IdentityProvider, SessionIdentity
from bandwidth.core.clock import DayClock
from bandwidth.core.config.settings import get_settings
from bandwidth.core.notify.dispatch import (
    LoggingNotificationDispatch,
    NotificationDispatch,
    WebhookNotificationDispatch,
)
from bandwidth.core.storage.database import BandwidthDatabase
from bandwidth.core.storage.encryption import EncryptionError, FieldEncryptor
from bandwidth.core.storage.repository import BandwidthRepository
from bandwidth.domains.health.connectors import BiometricSource
from bandwidth.domains.health.connectors.apple_health import AppleHealthSource
from bandwidth.domains.health.connectors.providers import MockBiometricSource
from bandwidth.domains.health.domain_logic.session import create_session
from bandwidth.domains.health.tools.audit_tools import register_audit_tools
from bandwidth.domains.health.tools.bandwidth_tools import register_bandwidth_tools
from bandwidth.domains.health.tools.settings_tools import register_settings_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "Bandwidth Health"
VERSION = "0.1.0"


def _create_repository(db_path: str, encryption_key: str) -> BandwidthRepository:
    """Open the configured store, or an in-memory one when no key is set."""
    if not encryption_key:
        logger.warning(
            "No ENCRYPTION_KEY configured — using an in-memory store with an "
            "ephemeral key. Set ENCRYPTION_KEY to persist scores."
        )
        db_path = ":memory:"
        encryption_key = FieldEncryptor.generate_key()

    encryptor = FieldEncryptor(encryption_key)
    database = BandwidthDatabase(db_path)
    database.initialize()
    logger.info(
        "Bandwidth store initialized: %s (schema v%d)",
        db_path,
        database.get_schema_version(),
    )
    return BandwidthRepository(database, encryptor)


def create_app(
    *,
    source_override: BiometricSource | None = None,
    repository_override: BandwidthRepository | None = None,
    notifier_override: NotificationDispatch | None = None,
    identity_override: IdentityProvider | None = None,
    clock_override: DayClock | None = None,
    start_listener: bool = False,
) -> FastMCP:
    """Create and configure the Bandwidth MCP server.

    This is the main application factory. It:
    1. Opens the encrypted document store
    2. Binds the session identity and reference-time-zone clock
    3. Selects the biometric source (Apple Health export or mock)
    4. Selects the push notification channel
    5. Wires the scoring session and registers all tools

    With ``start_listener`` the daily task listener runs for the lifetime
    of the server.
    """
    settings = get_settings()

    # --- Storage ---
    if repository_override is not None:
        repository = repository_override
    else:
        try:
            repository = _create_repository(settings.db_path, settings.encryption_key)
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            raise
    audit_logger = AuditLogger(repository.database)

    # --- Identity and clock ---
    identity = identity_override or SessionIdentity(settings.user_id or None)
    clock = clock_override or DayClock(settings.time_zone)

    # --- Biometric source ---
    if source_override is not None:
        source = source_override
    elif settings.apple_health_export_path and Path(settings.apple_health_export_path).exists():
        source = AppleHealthSource(settings.apple_health_export_path, clock.tz)
        logger.info("Using Apple Health export at %s", settings.apple_health_export_path)
    else:
        source = MockBiometricSource(clock.tz)
        logger.info("Using mock biometric source")

    # --- Push notifications ---
    if notifier_override is not None:
        notifier = notifier_override
    elif settings.push_gateway_url:
        notifier = WebhookNotificationDispatch(
            settings.push_gateway_url, token=settings.push_gateway_token
        )
        logger.info("Push gateway configured for %s", settings.push_gateway_url)
    else:
        notifier = LoggingNotificationDispatch()

    session = create_session(
        identity=identity,
        repository=repository,
        source=source,
        notifier=notifier,
        clock=clock,
        audit_logger=audit_logger,
        poll_interval=settings.task_poll_interval_seconds,
    )

    @asynccontextmanager
    async def _lifespan(server: FastMCP):
        if not session.orchestrator.start_listening():
            logger.warning("Daily task listener not started: %s", session.orchestrator.last_error)
        try:
            yield {}
        finally:
            session.orchestrator.stop_listening()

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Bandwidth Health server. Computes a daily bandwidth score from "
            "heart-rate, exercise and sleep signals against your own baseline, "
            "keeps per-day history, and alerts your partner when a score falls "
            "into the lowest 20% of your recent history."
        ),
        **({"lifespan": _lifespan} if start_listener else {}),
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": VERSION,
            "signed_in": identity.current_user_id() is not None,
            "data_source": source.data_source,
            "time_zone": str(clock.tz),
            "documents_stored": repository.count_documents(),
            "listening": session.orchestrator.is_listening,
        }

    register_bandwidth_tools(server, session)
    register_settings_tools(server, session)
    register_audit_tools(server, audit_logger, identity)
    logger.info("Bandwidth, settings and audit tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app(start_listener=True)
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
