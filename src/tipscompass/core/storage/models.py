"""Data models for the TIPS Compass persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ActionType = Literal["call", "med_adjust", "ed_referral", "note", "followup"]
ActionSeverity = Literal["routine", "urgent"]
ActionStatus = Literal["open", "done"]

ACTION_LABELS: dict[str, str] = {
    "call": "Call patient",
    "med_adjust": "Medication adjustment",
    "ed_referral": "ED referral",
    "note": "Add note",
    "followup": "Schedule follow-up",
}
ACTION_SEVERITIES = ("routine", "urgent")
ACTION_STATUSES = ("open", "done")

# Action types that default to urgent severity when none is given
URGENT_ACTION_TYPES = frozenset({"ed_referral"})


@dataclass
class StoredCheckIn:
    """A check-in document as held in the store.

    ``payload`` is the raw submitted record (decrypted). ``patient_id``
    and ``date`` are the unencrypted index columns derived from it at write
    time; ``date`` is empty when the record carried no usable date.
    """

    id: str
    patient_id: str
    date: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""


@dataclass
class StoredRiskState:
    """The current-risk record for one patient, including fields owned by other writers."""

    patient_id: str
    level: str | None = None
    reasons: list[str] = field(default_factory=list)
    last_checkin_date: str | None = None
    updated_at: str | None = None

    # Clinician-authored; never touched by risk evaluation
    clinician_note: str | None = None
    note_updated_at: str | None = None

    def to_document(self) -> dict[str, Any]:
        """Return the camelCase record read by the dashboard."""
        doc: dict[str, Any] = {
            "patientId": self.patient_id,
            "level": self.level,
            "reasons": list(self.reasons),
            "lastCheckInDate": self.last_checkin_date,
            "updatedAt": self.updated_at,
        }
        if self.clinician_note is not None:
            doc["clinicianNote"] = self.clinician_note
            doc["noteUpdatedAt"] = self.note_updated_at
        return doc


@dataclass
class ClinicianAction:
    """A follow-up task logged by a clinician against a patient."""

    id: str
    patient_id: str
    type: str
    severity: str
    title: str
    details: str = ""
    status: str = "open"
    created_by: str = "clinician"
    created_at: str = ""

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "patientId": self.patient_id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "details": self.details,
            "status": self.status,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
        }
