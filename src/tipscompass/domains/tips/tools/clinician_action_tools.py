"""MCP tools for the clinician follow-up plan attached to each patient."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from tipscompass.core.storage.repository import CompassRepository

logger = logging.getLogger(__name__)


def register_clinician_action_tools(mcp: FastMCP, repository: CompassRepository) -> None:
    """Register clinician action tools on the MCP server."""

    @mcp.tool
    async def create_clinician_action(
        ctx: Context,
        patient_id: str,
        action_type: str,
        severity: str = "",
        title: str = "",
        details: str = "",
        created_by: str = "clinician",
    ) -> str:
        """Log a follow-up action for a patient.

        Args:
            patient_id: The patient identifier.
            action_type: One of 'call', 'med_adjust', 'ed_referral', 'note', 'followup'.
            severity: 'routine' or 'urgent'. Defaults to urgent for ED referrals.
            title: Short title. Defaults to the action type's label.
            details: Free-text details.
            created_by: Who logged the action.
        """
        try:
            action = repository.create_action(
                patient_id,
                action_type,
                severity=severity or None,
                title=title,
                details=details,
                created_by=created_by,
            )
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({"status": "saved", "action": action.to_document()})

    @mcp.tool
    async def set_clinician_action_status(ctx: Context, action_id: str, status: str) -> str:
        """Mark a clinician action as 'open' or 'done'.

        Args:
            action_id: The action id.
            status: 'open' or 'done'.
        """
        try:
            found = repository.set_action_status(action_id, status)
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        if not found:
            return json.dumps({
                "status": "not_found",
                "action_id": action_id,
                "message": "No action found with that ID.",
            })
        return json.dumps({"status": "updated", "action_id": action_id, "action_status": status})

    @mcp.tool
    async def list_clinician_actions(ctx: Context, patient_id: str, limit: int = 50) -> str:
        """List a patient's clinician actions, open and done, newest first.

        Args:
            patient_id: The patient identifier.
            limit: Maximum number of actions to return.
        """
        actions = repository.list_actions(patient_id, limit=limit)
        open_count = sum(1 for a in actions if a.status == "open")
        return json.dumps({
            "status": "ok",
            "patient_id": patient_id,
            "open": open_count,
            "done": len(actions) - open_count,
            "actions": [a.to_document() for a in actions],
        }, indent=2)
