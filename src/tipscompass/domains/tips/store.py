"""Store capability used by the risk pipeline.

The pipeline never reaches for a global client: callers hand it a
``CheckInStore``. ``RepositoryCheckInStore`` is the implementation backed by
the Compass repository; tests substitute in-memory fakes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from tipscompass.core.storage.repository import CompassRepository

logger = logging.getLogger(__name__)


@runtime_checkable
class CheckInStore(Protocol):
    """Read and write operations the risk pipeline needs from storage."""

    async def recent_checkins(
        self, patient_id: str, up_to_date: str, limit: int
    ) -> list[Mapping[str, Any]]:
        """Raw check-in records with ``date <= up_to_date``, newest first, at most ``limit``."""
        ...

    async def merge_risk_state(self, patient_id: str, fields: Mapping[str, Any]) -> None:
        """Keyed partial upsert of the patient's risk record."""
        ...


class RepositoryCheckInStore:
    """CheckInStore backed by the encrypted SQLite repository."""

    def __init__(self, repository: CompassRepository) -> None:
        self._repo = repository

    async def recent_checkins(
        self, patient_id: str, up_to_date: str, limit: int
    ) -> list[Mapping[str, Any]]:
        return self._repo.query_recent_checkins(patient_id, up_to_date, limit=limit)

    async def merge_risk_state(self, patient_id: str, fields: Mapping[str, Any]) -> None:
        self._repo.merge_risk_state(patient_id, fields)
