"""Check-in write trigger — keeps each patient's risk state in step with their check-ins.

One event is one check-in create, update or delete. Processing ends in one of
three ways:

* skipped — deletion, or no usable patient id or date; nothing is read or written.
* updated — normalize, fetch weight history, evaluate, write; one risk write.
* failure — anything after normalization raised; ``RiskPipelineError`` is
  raised for the delivering platform to retry. The write is the last step,
  so the previous risk state is left intact.

Delivery is at-least-once. Reprocessing the same event converges on the same
risk state because every step is a function of stored state and the event.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from tipscompass.domains.tips.domain_logic.normalizer import normalize_checkin
from tipscompass.domains.tips.domain_logic.risk_evaluator import evaluate_risk
from tipscompass.domains.tips.domain_logic.risk_models import (
    RISK_LEVELS,
    RiskEvaluation,
    RiskState,
)
from tipscompass.domains.tips.domain_logic.risk_writer import write_risk_state
from tipscompass.domains.tips.domain_logic.weight_history import fetch_weight_history

if TYPE_CHECKING:
    from tipscompass.core.audit.logger import AuditLogger
    from tipscompass.domains.tips.store import CheckInStore

logger = logging.getLogger(__name__)

TRIGGER_NAME = "on_checkin_write"

SkipReason = Literal["deleted", "missing_patient_id", "missing_date"]


class RiskPipelineError(Exception):
    """Raised when a check-in event could not be processed."""


class RiskInvariantError(RiskPipelineError):
    """Raised when an evaluation breaks the risk contract (a defect, not bad input)."""


@dataclass(frozen=True)
class CheckInWriteEvent:
    """A check-in document was written.

    ``data`` is the document after the write; it is ``None`` when the
    document was deleted.
    """

    checkin_id: str
    data: Mapping[str, Any] | None
    deleted: bool = False

    @property
    def is_deletion(self) -> bool:
        return self.deleted or self.data is None


@dataclass(frozen=True)
class TriggerOutcome:
    """How an event ended when it did not fail."""

    status: Literal["skipped", "updated"]
    checkin_id: str
    skip_reason: SkipReason | None = None
    risk_state: RiskState | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status, "checkin_id": self.checkin_id}
        if self.skip_reason is not None:
            result["skip_reason"] = self.skip_reason
        if self.risk_state is not None:
            result["risk_state"] = self.risk_state.to_document()
        return result


def check_evaluation(evaluation: RiskEvaluation) -> None:
    """Raise RiskInvariantError if the evaluation is outside the risk contract."""
    if evaluation.level not in RISK_LEVELS:
        raise RiskInvariantError(f"Evaluation produced unknown level {evaluation.level!r}")
    if not evaluation.reasons:
        raise RiskInvariantError("Evaluation produced no reasons")


def _skip(
    event: CheckInWriteEvent,
    reason: SkipReason,
    audit_logger: AuditLogger | None,
) -> TriggerOutcome:
    logger.info("Skipping check-in %s: %s", event.checkin_id, reason)
    if audit_logger is not None:
        audit_logger.log_risk_evaluation(
            TRIGGER_NAME, status="skipped", metadata={"skip_reason": reason}
        )
    return TriggerOutcome(status="skipped", checkin_id=event.checkin_id, skip_reason=reason)


def _audit_failure(
    audit_logger: AuditLogger | None,
    patient_id: str,
    start_time: float,
    exc: Exception,
) -> None:
    if audit_logger is None:
        return
    audit_logger.log_risk_evaluation(
        TRIGGER_NAME,
        patient_id=patient_id,
        status="failure",
        duration_ms=round((time.monotonic() - start_time) * 1000, 1),
        error_type=type(exc).__name__,
    )


async def on_checkin_write(
    event: CheckInWriteEvent,
    store: CheckInStore,
    audit_logger: AuditLogger | None = None,
) -> TriggerOutcome:
    """Re-evaluate the patient's risk for a written check-in.

    Args:
        event: The check-in write being delivered.
        store: History reads and risk writes go through this capability.
        audit_logger: Optional audit trail for outcomes.

    Returns:
        The skipped or updated outcome.

    Raises:
        RiskPipelineError: If any step after normalization fails.
    """
    if event.is_deletion:
        return _skip(event, "deleted", audit_logger)

    checkin = normalize_checkin(event.data)
    if not checkin.patient_id:
        return _skip(event, "missing_patient_id", audit_logger)
    if not checkin.date:
        return _skip(event, "missing_date", audit_logger)

    start_time = time.monotonic()
    try:
        history = await fetch_weight_history(store, checkin.patient_id, checkin.date)
        evaluation = evaluate_risk(checkin, history)
        check_evaluation(evaluation)
        state = await write_risk_state(store, checkin.patient_id, evaluation, checkin.date)
    except RiskInvariantError as exc:
        logger.critical("Risk contract violated for check-in %s: %s", event.checkin_id, exc)
        _audit_failure(audit_logger, checkin.patient_id, start_time, exc)
        raise
    except Exception as exc:
        logger.exception("Risk evaluation failed for check-in %s", event.checkin_id)
        _audit_failure(audit_logger, checkin.patient_id, start_time, exc)
        raise RiskPipelineError(
            f"Could not evaluate check-in {event.checkin_id}: {exc}"
        ) from exc

    elapsed_ms = (time.monotonic() - start_time) * 1000
    if audit_logger is not None:
        audit_logger.log_risk_evaluation(
            TRIGGER_NAME,
            patient_id=checkin.patient_id,
            duration_ms=round(elapsed_ms, 1),
            metadata={
                "level": state.level,
                "reason_count": len(state.reasons),
                "weight_samples": len(history),
            },
        )
    return TriggerOutcome(status="updated", checkin_id=event.checkin_id, risk_state=state)
