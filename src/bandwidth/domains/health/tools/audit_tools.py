"""MCP tools for viewing the audit trail.

The audit trail holds no raw biometric values: it records task outcomes,
settings changes and each time a low score was disclosed to a partner.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from bandwidth.core.audit.logger import AuditLogger
    from bandwidth.core.auth.identity import IdentityProvider

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
    identity: IdentityProvider,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
    ) -> str:
        """View recent task, settings and partner-disclosure events.

        Args:
            days: Number of days to look back (default: 30).
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        user_id = identity.current_user_id()

        total_events = audit_logger.count_events(since=since)
        disclosure_count = audit_logger.count_disclosures(user_id=user_id, since=since)
        recent_events = audit_logger.get_events(user_id=user_id, since=since, limit=20)

        display_events = []
        for event in recent_events:
            display_events.append({
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "subject_id": event.get("subject_id"),
                "partner_disclosed": bool(event.get("partner_disclosed")),
                "status": event.get("status"),
                "error_type": event.get("error_type"),
                "duration_ms": event.get("duration_ms"),
            })

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": total_events,
            "partner_disclosures": disclosure_count,
            "recent_events": display_events,
            "note": (
                "This audit trail contains no raw health data. It tracks score "
                "processing and when a low score was shared with your partner."
            ),
        }, indent=2)
