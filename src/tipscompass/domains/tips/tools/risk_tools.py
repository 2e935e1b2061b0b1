"""MCP tools for reading patients' current risk and annotating it."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from tipscompass.domains.tips.domain_logic.risk_models import RISK_LEVELS

if TYPE_CHECKING:
    from tipscompass.core.storage.repository import CompassRepository

logger = logging.getLogger(__name__)


def register_risk_tools(mcp: FastMCP, repository: CompassRepository) -> None:
    """Register risk state tools on the MCP server."""

    @mcp.tool
    async def get_risk_state(ctx: Context, patient_id: str) -> str:
        """Get a patient's current risk level and the reasons behind it.

        Args:
            patient_id: The patient identifier.
        """
        state = repository.get_risk_state(patient_id)
        if state is None:
            return json.dumps({
                "status": "not_found",
                "patient_id": patient_id,
                "message": "No risk state yet. Submit a check-in to start tracking.",
            })
        return json.dumps({"status": "ok", "risk_state": state.to_document()})

    @mcp.tool
    async def list_risk_states(ctx: Context, level: str = "") -> str:
        """List patients' current risk states, most recent check-in first.

        Args:
            level: Optional filter: 'green', 'yellow' or 'red'.
        """
        if level and level not in RISK_LEVELS:
            return json.dumps({
                "status": "error",
                "message": f"level must be one of {list(RISK_LEVELS)}.",
            })
        states = repository.list_risk_states(level=level or None)
        return json.dumps({
            "status": "ok",
            "count": len(states),
            "risk_states": [s.to_document() for s in states],
        }, indent=2)

    @mcp.tool
    async def annotate_risk_state(ctx: Context, patient_id: str, note: str) -> str:
        """Attach a clinician note to a patient's risk record.

        The note is kept when later check-ins update the risk level.

        Args:
            patient_id: The patient identifier.
            note: Free-text clinician note.
        """
        if not repository.annotate_risk_state(patient_id, note.strip()):
            return json.dumps({
                "status": "not_found",
                "patient_id": patient_id,
                "message": "No risk state yet. Notes can be added after the first check-in.",
            })
        return json.dumps({"status": "saved", "patient_id": patient_id})
