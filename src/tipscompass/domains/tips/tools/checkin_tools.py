"""MCP tools for submitting and managing daily check-ins.

Each write is delivered to the risk trigger straight away, so the patient's
risk state reflects the check-in by the time the tool returns. A failed risk
update leaves the check-in stored; ``reevaluate_checkin`` redelivers it.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from tipscompass.domains.tips.domain_logic.trigger import (
    CheckInWriteEvent,
    RiskPipelineError,
    on_checkin_write,
)
from tipscompass.domains.tips.intake import record_checkin, remove_checkin, replay_checkin
from tipscompass.domains.tips.store import RepositoryCheckInStore

if TYPE_CHECKING:
    from tipscompass.core.audit.logger import AuditLogger
    from tipscompass.core.storage.repository import CompassRepository

logger = logging.getLogger(__name__)


def register_checkin_tools(
    mcp: FastMCP,
    repository: CompassRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register check-in tools on the MCP server."""
    store = RepositoryCheckInStore(repository)

    async def _deliver(event: CheckInWriteEvent) -> dict[str, Any]:
        try:
            outcome = await on_checkin_write(event, store, audit_logger)
        except RiskPipelineError as exc:
            return {
                "status": "failed",
                "checkin_id": event.checkin_id,
                "error": str(exc),
                "message": "Check-in stored, but the risk update failed. Retry with reevaluate_checkin.",
            }
        return outcome.to_dict()

    @mcp.tool
    async def submit_checkin(
        ctx: Context,
        record: dict[str, Any],
        checkin_id: str = "",
    ) -> str:
        """Submit (or correct) a patient's daily TIPS recovery check-in.

        Args:
            record: Check-in fields: patientId, date (YYYY-MM-DD), confusion,
                sleepReversal, tremor, bowelMovements, weightKg, bleeding,
                fever, medsTaken {lactulose, rifaximin, diuretics}.
            checkin_id: Document id. Defaults to '{patientId}_{date}'.
        """
        start_time = time.monotonic()
        event = record_checkin(repository, record, checkin_id)
        risk = await _deliver(event)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "submit_checkin",
                tool_input=record,
                duration_ms=round(elapsed_ms, 1),
                status="failure" if risk["status"] == "failed" else "success",
            )

        return json.dumps({
            "status": "saved",
            "checkin_id": event.checkin_id,
            "risk": risk,
        })

    @mcp.tool
    async def delete_checkin(ctx: Context, checkin_id: str) -> str:
        """Delete a check-in. The patient's current risk state is not changed.

        Args:
            checkin_id: The check-in document id.
        """
        event = remove_checkin(repository, checkin_id)
        if event is None:
            return json.dumps({
                "status": "not_found",
                "checkin_id": checkin_id,
                "message": "No check-in found with that ID.",
            })

        if audit_logger is not None:
            audit_logger.log_data_delete(tool_name="delete_checkin", count=1)
        risk = await _deliver(event)
        return json.dumps({"status": "deleted", "checkin_id": checkin_id, "risk": risk})

    @mcp.tool
    async def reevaluate_checkin(ctx: Context, checkin_id: str) -> str:
        """Re-run risk evaluation for a stored check-in (safe to repeat).

        Args:
            checkin_id: The check-in document id.
        """
        event = replay_checkin(repository, checkin_id)
        if event is None:
            return json.dumps({
                "status": "not_found",
                "checkin_id": checkin_id,
                "message": "No check-in found with that ID.",
            })
        risk = await _deliver(event)
        return json.dumps({"status": "reevaluated", "checkin_id": checkin_id, "risk": risk})

    @mcp.tool
    async def list_checkins(ctx: Context, patient_id: str, limit: int = 30) -> str:
        """List a patient's check-ins, newest first.

        Args:
            patient_id: The patient identifier.
            limit: Maximum number of check-ins to return.
        """
        checkins = repository.list_checkins(patient_id, limit=limit)
        return json.dumps({
            "status": "ok",
            "patient_id": patient_id,
            "count": len(checkins),
            "checkins": [
                {"checkin_id": c.id, "updated_at": c.updated_at, **c.payload}
                for c in checkins
            ],
        }, indent=2)
