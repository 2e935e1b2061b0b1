"""Check-in intake — stores submitted documents and produces their write events.

Submissions merge into an existing document with the same id, so a corrected
check-in for the same day updates fields rather than dropping ones the
correction left out.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from tipscompass.core.storage.models import StoredCheckIn
from tipscompass.core.storage.repository import CompassRepository
from tipscompass.domains.tips.domain_logic.normalizer import coerce_date, resolve_patient_id
from tipscompass.domains.tips.domain_logic.trigger import CheckInWriteEvent

logger = logging.getLogger(__name__)


def checkin_document_id(record: Mapping[str, Any]) -> str:
    """``{patientId}_{date}``, with ``unknown`` standing in for a missing patient."""
    patient_id = resolve_patient_id(record).strip() or "unknown"
    return f"{patient_id}_{record.get('date', '')}"


def record_checkin(
    repository: CompassRepository,
    record: Mapping[str, Any],
    checkin_id: str = "",
) -> CheckInWriteEvent:
    """Merge-write a check-in document and return the resulting write event.

    Args:
        repository: Document store.
        record: Raw submitted check-in (any shape).
        checkin_id: Document id; derived from patient and date when empty.
    """
    doc_id = checkin_id or checkin_document_id(record)
    existing = repository.get_checkin(doc_id)
    payload: dict[str, Any] = dict(existing.payload) if existing else {}
    payload.update(record)

    repository.save_checkin(StoredCheckIn(
        id=doc_id,
        patient_id=resolve_patient_id(payload),
        date=coerce_date(payload.get("date")),
        payload=payload,
        created_at=existing.created_at if existing else "",
    ))
    logger.info("Check-in %s %s", doc_id, "updated" if existing else "created")
    return CheckInWriteEvent(checkin_id=doc_id, data=payload)


def remove_checkin(repository: CompassRepository, checkin_id: str) -> CheckInWriteEvent | None:
    """Delete a check-in document; returns its deletion event, or None if absent."""
    if not repository.delete_checkin(checkin_id):
        return None
    return CheckInWriteEvent(checkin_id=checkin_id, data=None, deleted=True)


def replay_checkin(repository: CompassRepository, checkin_id: str) -> CheckInWriteEvent | None:
    """Rebuild the write event for a stored check-in, for redelivery."""
    stored = repository.get_checkin(checkin_id)
    if stored is None:
        return None
    return CheckInWriteEvent(checkin_id=stored.id, data=stored.payload)
