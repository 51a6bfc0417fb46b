"""MCP tools for viewing and editing score settings.

Every tool acts on the settings of the user signed in when it is called.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from bandwidth.core.auth.identity import UnauthenticatedError

if TYPE_CHECKING:
    from bandwidth.domains.health.domain_logic.score_settings import SettingsManager
    from bandwidth.domains.health.domain_logic.session import ScoringSession

logger = logging.getLogger(__name__)


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def _result(manager: SettingsManager, ok: bool, message: str) -> str:
    return json.dumps({
        "status": "saved" if ok else "rejected",
        "message": message,
        "settings": manager.saved.to_dict(),
    }, indent=2)


def register_settings_tools(mcp: FastMCP, session: ScoringSession) -> None:
    """Register score settings tools on the MCP server."""

    @mcp.tool
    async def get_score_settings(ctx: Context) -> str:
        """Show the category toggles and weights used for your bandwidth score."""
        try:
            manager = session.current_settings()
        except UnauthenticatedError as exc:
            return _error(str(exc))
        return json.dumps({"status": "ok", "settings": manager.saved.to_dict()}, indent=2)

    @mcp.tool
    async def update_score_settings(ctx: Context, changes: dict[str, Any]) -> str:
        """Change score settings. Weights are percentages.

        Enabled main weights, recent-day weights, and the weights of each
        enabled category must each sum to 100. Rejected changes leave the
        saved settings untouched.

        Args:
            changes: Fields to change, e.g. {"recent_days_weights":
                {"currentDay": 60, "yesterday": 30, "twoDaysAgo": 10}}.
        """
        try:
            manager = session.current_settings()
        except UnauthenticatedError as exc:
            return _error(str(exc))
        ok, message = manager.replace(changes)
        return _result(manager, ok, message)

    @mcp.tool
    async def toggle_score_category(ctx: Context, category: str, enabled: bool) -> str:
        """Enable or disable a score category and rebalance the main weights.

        Args:
            category: 'sleep', 'exercise' or 'heartRate'.
            enabled: Whether the category counts toward the score.
        """
        try:
            manager = session.current_settings()
            manager.toggle_category(category, enabled)
        except (UnauthenticatedError, ValueError) as exc:
            return _error(str(exc))
        ok, message = manager.save()
        logger.info("Toggled %s to %s for user %s: %s", category, enabled, manager.user_id, message)
        return _result(manager, ok, message)

    @mcp.tool
    async def reset_score_settings(ctx: Context) -> str:
        """Restore the default score settings."""
        try:
            manager = session.current_settings()
        except UnauthenticatedError as exc:
            return _error(str(exc))
        ok, message = manager.reset_to_defaults()
        return _result(manager, ok, message)
