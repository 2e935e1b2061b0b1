"""Check-in and risk models plus the severity scale for TIPS recovery triage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Severity scale
# ---------------------------------------------------------------------------

RiskLevel = Literal["green", "yellow", "red"]

RISK_LEVELS: tuple[str, ...] = ("green", "yellow", "red")

# green < yellow < red
RISK_RANK: dict[str, int] = {"green": 0, "yellow": 1, "red": 2}


def max_risk(current: RiskLevel, candidate: RiskLevel) -> RiskLevel:
    """Return the more severe of two levels."""
    return candidate if RISK_RANK[candidate] > RISK_RANK[current] else current


# ---------------------------------------------------------------------------
# Check-in
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MedsTaken:
    """Self-reported adherence for the three standing post-TIPS medications."""

    lactulose: bool = False
    rifaximin: bool = False
    diuretics: bool = False

    def to_record(self) -> dict[str, bool]:
        return {
            "lactulose": self.lactulose,
            "rifaximin": self.rifaximin,
            "diuretics": self.diuretics,
        }


@dataclass(frozen=True)
class CheckIn:
    """A fully populated daily check-in.

    ``patient_id`` and ``date`` are empty strings when the source record had
    no usable value; such a check-in is never evaluated.
    """

    patient_id: str
    date: str                       # YYYY-MM-DD
    confusion: bool = False
    sleep_reversal: bool = False
    tremor: bool = False
    bowel_movements: int = 0
    weight_kg: float | None = None  # None = not measured
    bleeding: bool = False
    fever: bool = False
    meds_taken: MedsTaken = field(default_factory=MedsTaken)

    @property
    def has_neuro_signal(self) -> bool:
        return self.confusion or self.sleep_reversal or self.tremor

    def to_record(self) -> dict[str, Any]:
        """Return the camelCase document form."""
        return {
            "patientId": self.patient_id,
            "date": self.date,
            "confusion": self.confusion,
            "sleepReversal": self.sleep_reversal,
            "tremor": self.tremor,
            "bowelMovements": self.bowel_movements,
            "weightKg": self.weight_kg,
            "bleeding": self.bleeding,
            "fever": self.fever,
            "medsTaken": self.meds_taken.to_record(),
        }


@dataclass(frozen=True)
class WeightSample:
    """A dated weight reading taken from check-in history."""

    date: str
    weight_kg: float


# ---------------------------------------------------------------------------
# Risk results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskEvaluation:
    """Output of the rule set: a level and the reasons, in rule order."""

    level: RiskLevel
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class RiskState:
    """The risk fields written for a patient after evaluating a check-in."""

    patient_id: str
    level: RiskLevel
    reasons: tuple[str, ...]
    last_checkin_date: str
    updated_at: str

    def to_document(self) -> dict[str, Any]:
        return {
            "patientId": self.patient_id,
            "level": self.level,
            "reasons": list(self.reasons),
            "lastCheckInDate": self.last_checkin_date,
            "updatedAt": self.updated_at,
        }
