"""Risk state writer — merge-upserts the current risk record for a patient."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from tipscompass.domains.tips.domain_logic.risk_models import RiskEvaluation, RiskState

if TYPE_CHECKING:
    from tipscompass.domains.tips.store import CheckInStore

logger = logging.getLogger(__name__)


async def write_risk_state(
    store: CheckInStore,
    patient_id: str,
    evaluation: RiskEvaluation,
    checkin_date: str,
) -> RiskState:
    """Write level, reasons, last check-in date and write time for a patient.

    Goes through the store's partial upsert, so fields other writers keep on
    the record (clinician notes) are left as they are. Concurrent writes for
    the same patient resolve last-writer-wins.

    Returns:
        The risk fields as written.
    """
    state = RiskState(
        patient_id=patient_id,
        level=evaluation.level,
        reasons=evaluation.reasons,
        last_checkin_date=checkin_date,
        updated_at=datetime.now(timezone.utc).isoformat(),
    )
    await store.merge_risk_state(
        patient_id,
        {
            "level": state.level,
            "reasons": list(state.reasons),
            "last_checkin_date": state.last_checkin_date,
            "updated_at": state.updated_at,
        },
    )
    logger.info(
        "Risk state for %s set to %s (%d reasons, check-in %s)",
        patient_id,
        state.level,
        len(state.reasons),
        checkin_date,
    )
    return state
