"""Check-in normalizer — coerces an arbitrary submitted record into a CheckIn.

Every coercion is total: a missing or malformed optional field takes its
default, nothing raises. Only ``patient_id`` and ``date`` can come out empty,
and the trigger treats that as a skip.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from datetime import date as _date
from typing import Any

from tipscompass.domains.tips.domain_logic.risk_models import CheckIn, MedsTaken

logger = logging.getLogger(__name__)

# Patient identity field names, highest priority first. "patientID" is the
# legacy spelling still sent by older clients.
PATIENT_ID_ALIASES: tuple[str, ...] = ("patientId", "patientID")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_SYMPTOM_FIELDS = {
    "confusion": "confusion",
    "sleep_reversal": "sleepReversal",
    "tremor": "tremor",
    "bleeding": "bleeding",
    "fever": "fever",
}


def resolve_patient_id(record: Mapping[str, Any]) -> str:
    """Return the first non-empty patient identifier among the known aliases.

    If a lower-priority alias carries a different value, the higher-priority
    one still wins and the conflict is logged.
    """
    resolved = ""
    for alias in PATIENT_ID_ALIASES:
        value = record.get(alias)
        if not isinstance(value, str) or not value:
            continue
        if not resolved:
            resolved = value
        elif value != resolved:
            logger.warning(
                "Conflicting patient identifiers in check-in; keeping %r over %s=%r",
                resolved,
                alias,
                value,
            )
    return resolved


def coerce_bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def coerce_count(value: Any) -> int:
    """Non-negative integer, else 0. Integral floats (e.g. 3.0) are accepted."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value >= 0 else 0
    if isinstance(value, float) and math.isfinite(value) and value.is_integer() and value >= 0:
        return int(value)
    return 0


def coerce_weight(value: Any) -> float | None:
    """Positive finite weight in kilograms, else None (not measured)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


def coerce_date(value: Any) -> str:
    """A real calendar date in ``YYYY-MM-DD`` form, else an empty string."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return ""
    try:
        _date.fromisoformat(value)
    except ValueError:
        return ""
    return value


def coerce_meds(value: Any) -> MedsTaken:
    if not isinstance(value, Mapping):
        return MedsTaken()
    return MedsTaken(
        lactulose=coerce_bool(value.get("lactulose")),
        rifaximin=coerce_bool(value.get("rifaximin")),
        diuretics=coerce_bool(value.get("diuretics")),
    )


def normalize_checkin(record: Mapping[str, Any] | None) -> CheckIn:
    """Build a complete CheckIn from a partial or untyped record.

    Args:
        record: Submitted check-in document. ``None`` or a non-mapping is
            treated as an empty record.

    Returns:
        A CheckIn with every field populated.
    """
    if not isinstance(record, Mapping):
        record = {}

    symptoms = {
        attr: coerce_bool(record.get(key)) for attr, key in _SYMPTOM_FIELDS.items()
    }
    return CheckIn(
        patient_id=resolve_patient_id(record),
        date=coerce_date(record.get("date")),
        bowel_movements=coerce_count(record.get("bowelMovements")),
        weight_kg=coerce_weight(record.get("weightKg")),
        meds_taken=coerce_meds(record.get("medsTaken")),
        **symptoms,
    )
