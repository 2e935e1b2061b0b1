"""Weight history query for the volume-overload trend rule."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from tipscompass.domains.tips.domain_logic.risk_models import WeightSample

if TYPE_CHECKING:
    from tipscompass.domains.tips.store import CheckInStore

logger = logging.getLogger(__name__)

# The trend window: the last up to four check-ins. Fixed, not configurable.
WEIGHT_HISTORY_LIMIT = 4


def _is_weight(value: Any) -> bool:
    # Any stored number is a sample, zero and negatives included. The
    # check-in normalizer's "> 0" rule applies to the evaluated check-in only.
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def weight_samples(records: list[Mapping[str, Any]]) -> list[WeightSample]:
    """Project raw check-in records onto the ones carrying a numeric weight.

    Order is preserved; records without a well-formed ``weightKg`` are dropped.
    """
    return [
        WeightSample(date=str(record.get("date", "")), weight_kg=float(record["weightKg"]))
        for record in records
        if _is_weight(record.get("weightKg"))
    ]


async def fetch_weight_history(
    store: CheckInStore,
    patient_id: str,
    up_to_date: str,
) -> list[WeightSample]:
    """Weight samples from the patient's most recent check-ins up to ``up_to_date``.

    Reads at most ``WEIGHT_HISTORY_LIMIT`` check-ins (newest first) and then
    keeps the weight-bearing ones, so a sparse history yields fewer samples.
    Store errors propagate unchanged.
    """
    records = await store.recent_checkins(patient_id, up_to_date, WEIGHT_HISTORY_LIMIT)
    samples = weight_samples(list(records))
    logger.debug(
        "Weight history for %s up to %s: %d of %d check-ins weighed",
        patient_id,
        up_to_date,
        len(samples),
        len(records),
    )
    return samples
