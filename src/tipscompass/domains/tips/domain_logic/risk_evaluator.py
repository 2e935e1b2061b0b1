"""Risk evaluator — the fixed rule set mapping a check-in to a triage level.

Rules run in a fixed order. Each one that fires escalates the level (never
lowers it) and appends its reason, so several reasons can point at the same
symptoms while only the most severe level is kept.

    1. bleeding                                   -> red
    2. fever                                      -> red
    3. confusion with 0 bowel movements           -> red
    4. any neuro signal with < 2 bowel movements  -> yellow
    5. weight up >= 2.0 kg across the history     -> yellow  (needs >= 2 samples)

When nothing fires, the single reason is ``NO_SIGNAL_REASON`` and the level
stays green.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from tipscompass.domains.tips.domain_logic.risk_models import (
    CheckIn,
    RiskEvaluation,
    RiskLevel,
    WeightSample,
    max_risk,
)

BLEEDING_REASON = "Bleeding symptoms reported"
FEVER_REASON = "Fever reported"
SEVERE_HE_REASON = "Severe HE concern: confusion + 0 bowel movements"
POSSIBLE_HE_REASON = "Possible hepatic encephalopathy"
VOLUME_OVERLOAD_REASON = "Possible volume overload: +{delta} kg"
NO_SIGNAL_REASON = "No concerning signals detected"

# Bowel movements are the route for ammonia clearance
HE_BOWEL_MOVEMENT_FLOOR = 2
WEIGHT_GAIN_THRESHOLD_KG = 2.0
MIN_WEIGHT_SAMPLES = 2


def weight_delta(history: Sequence[WeightSample]) -> float | None:
    """Newest minus oldest weight across the window, or None with < 2 samples."""
    if len(history) < MIN_WEIGHT_SAMPLES:
        return None
    return history[0].weight_kg - history[-1].weight_kg


def _one_decimal(value: float) -> str:
    # Half away from zero on the exact binary value: 2.25 -> "2.3", not "2.2"
    return str(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def evaluate_risk(checkin: CheckIn, weight_history: Sequence[WeightSample]) -> RiskEvaluation:
    """Evaluate one normalized check-in against the rule set.

    Args:
        checkin: The check-in being evaluated.
        weight_history: Weight samples ordered newest first (0 to 4 entries).

    Returns:
        The most severe level reached and every fired rule's reason.
    """
    level: RiskLevel = "green"
    reasons: list[str] = []

    if checkin.bleeding:
        level = max_risk(level, "red")
        reasons.append(BLEEDING_REASON)

    if checkin.fever:
        level = max_risk(level, "red")
        reasons.append(FEVER_REASON)

    if checkin.confusion and checkin.bowel_movements == 0:
        level = max_risk(level, "red")
        reasons.append(SEVERE_HE_REASON)

    if checkin.has_neuro_signal and checkin.bowel_movements < HE_BOWEL_MOVEMENT_FLOOR:
        level = max_risk(level, "yellow")
        reasons.append(POSSIBLE_HE_REASON)

    delta = weight_delta(weight_history)
    if delta is not None and delta >= WEIGHT_GAIN_THRESHOLD_KG:
        level = max_risk(level, "yellow")
        reasons.append(VOLUME_OVERLOAD_REASON.format(delta=_one_decimal(delta)))

    if not reasons:
        reasons.append(NO_SIGNAL_REASON)

    return RiskEvaluation(level=level, reasons=tuple(reasons))
