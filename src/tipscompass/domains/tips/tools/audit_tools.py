"""MCP tools over the audit trail.

Nothing returned here identifies a patient: events carry hashed references
only.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from tipscompass.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

_EVENT_FIELDS = ("timestamp", "action", "tool_name", "status", "error_type", "duration_ms")


def _days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def register_audit_tools(mcp: FastMCP, audit_logger: AuditLogger) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(ctx: Context, days: int = 30) -> str:
        """Risk evaluations and tool calls over a recent period, with failures.

        Args:
            days: How many days back to look (default: 30).
        """
        since = _days_ago(days)
        by_action = audit_logger.summary(since=since)
        failures = sum(statuses.get("failure", 0) for statuses in by_action.values())

        recent = [
            {name: event.get(name) for name in _EVENT_FIELDS}
            for event in audit_logger.get_events(since=since, limit=20)
        ]
        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": sum(sum(s.values()) for s in by_action.values()),
            "failures": failures,
            "by_action": by_action,
            "recent_events": recent,
        }, indent=2)

    @mcp.tool
    async def prune_audit_log(ctx: Context, older_than_days: int = 365) -> str:
        """Delete audit events older than the given number of days.

        Args:
            older_than_days: Retention period in days (minimum 1).
        """
        if older_than_days < 1:
            return json.dumps({"status": "error", "message": "older_than_days must be at least 1."})
        removed = audit_logger.prune(before=_days_ago(older_than_days))
        return json.dumps({"status": "ok", "events_deleted": removed})
