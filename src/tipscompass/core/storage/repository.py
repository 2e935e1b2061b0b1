"""Compass repository — document operations for check-ins, risk states and actions.

The repository mediates between stored rows and the document shapes the rest
of the system works with, using FieldEncryptor to encrypt/decrypt the raw
check-in payload. Every ``sqlite3.Error`` surfaces as ``RepositoryError`` so
callers see one store failure type regardless of the backing engine.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from tipscompass.core.storage.database import CompassDatabase, DatabaseError
from tipscompass.core.storage.encryption import FieldEncryptor
from tipscompass.core.storage.models import (
    ACTION_LABELS,
    ACTION_SEVERITIES,
    ACTION_STATUSES,
    URGENT_ACTION_TYPES,
    ClinicianAction,
    StoredCheckIn,
    StoredRiskState,
)

logger = logging.getLogger(__name__)

# Columns a merge may set on a risk_states row. Keys are accepted field names.
_RISK_STATE_COLUMNS = {
    "level": "level",
    "reasons": "reasons_json",
    "last_checkin_date": "last_checkin_date",
    "updated_at": "updated_at",
    "clinician_note": "clinician_note",
    "note_updated_at": "note_updated_at",
}


class RepositoryError(Exception):
    """Raised when repository operations fail."""


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (sqlite3.Error, DatabaseError) as exc:
        raise RepositoryError(f"{operation} failed: {exc}") from exc


class CompassRepository:
    """Document repository for check-ins, per-patient risk states and clinician actions.

    Usage::

        db = CompassDatabase(":memory:")
        db.initialize()
        encryptor = FieldEncryptor(settings.encryption_key)
        repo = CompassRepository(db, encryptor)

        repo.save_checkin(StoredCheckIn(id="p1_2026-02-01", patient_id="p1",
                                        date="2026-02-01", payload={...}))
        recent = repo.query_recent_checkins("p1", "2026-02-01", limit=4)
    """

    def __init__(self, database: CompassDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Check-ins
    # ------------------------------------------------------------------

    def save_checkin(self, checkin: StoredCheckIn) -> str:
        """Insert or replace a check-in document.

        ``created_at`` of an existing document is preserved; ``updated_at`` is
        stamped with the write time.

        Returns:
            The check-in ID.
        """
        now = self._now_iso()
        with _store_errors("save_checkin"), self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO checkins (id, patient_id, date, payload_enc, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       patient_id = excluded.patient_id,
                       date = excluded.date,
                       payload_enc = excluded.payload_enc,
                       updated_at = excluded.updated_at""",
                (
                    checkin.id,
                    checkin.patient_id,
                    checkin.date,
                    self._enc.encrypt_document(checkin.payload),
                    checkin.created_at or now,
                    now,
                ),
            )
        logger.info("Saved check-in %s", checkin.id)
        return checkin.id

    def get_checkin(self, checkin_id: str) -> StoredCheckIn | None:
        """Retrieve a check-in by ID, or None if not found."""
        with _store_errors("get_checkin"):
            row = self._db.connection.execute(
                "SELECT * FROM checkins WHERE id = ?", (checkin_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_checkin(row)

    def delete_checkin(self, checkin_id: str) -> bool:
        """Delete a check-in document.

        Returns:
            True if a document was found and deleted, False otherwise.
        """
        with _store_errors("delete_checkin"), self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM checkins WHERE id = ?", (checkin_id,))
        if cursor.rowcount == 0:
            return False
        logger.info("Deleted check-in %s", checkin_id)
        return True

    def rotate_checkin_encryption(self) -> int:
        """Re-encrypt every stored check-in under the current key.

        Run after moving the old key into ``previous_keys``; once it returns,
        the old key can be dropped.

        Returns:
            Number of check-ins re-encrypted.
        """
        with _store_errors("rotate_checkin_encryption"), self._db.transaction() as conn:
            rows = conn.execute("SELECT id, payload_enc FROM checkins").fetchall()
            for row in rows:
                conn.execute(
                    "UPDATE checkins SET payload_enc = ? WHERE id = ?",
                    (self._enc.rotate(row["payload_enc"]), row["id"]),
                )
        logger.info("Re-encrypted %d check-ins under the current key", len(rows))
        return len(rows)

    def list_checkins(self, patient_id: str, *, limit: int = 30) -> list[StoredCheckIn]:
        """List a patient's check-ins, newest date first."""
        with _store_errors("list_checkins"):
            rows = self._db.connection.execute(
                """SELECT * FROM checkins WHERE patient_id = ?
                   ORDER BY date DESC LIMIT ?""",
                (patient_id, limit),
            ).fetchall()
        return [self._row_to_checkin(row) for row in rows]

    def query_recent_checkins(
        self,
        patient_id: str,
        up_to_date: str,
        *,
        limit: int = 4,
    ) -> list[dict[str, Any]]:
        """Raw check-in records for a patient with ``date <= up_to_date``.

        Documents without a usable date are not part of the date index and
        never match.

        Returns:
            Decrypted payloads, newest date first, at most ``limit`` of them.
        """
        with _store_errors("query_recent_checkins"):
            rows = self._db.connection.execute(
                """SELECT payload_enc FROM checkins
                   WHERE patient_id = ? AND date != '' AND date <= ?
                   ORDER BY date DESC LIMIT ?""",
                (patient_id, up_to_date, limit),
            ).fetchall()
        return [self._enc.decrypt_document(row["payload_enc"]) for row in rows]

    # ------------------------------------------------------------------
    # Risk states
    # ------------------------------------------------------------------

    def merge_risk_state(self, patient_id: str, fields: Mapping[str, Any]) -> None:
        """Partially upsert the risk state keyed by ``patient_id``.

        Only the given fields are written; every other column of an existing
        row keeps its value. This is a single statement, not read-then-write.

        Args:
            patient_id: Record key.
            fields: Subset of ``level``, ``reasons``, ``last_checkin_date``,
                ``updated_at``, ``clinician_note``, ``note_updated_at``.

        Raises:
            RepositoryError: On unknown or missing fields, or a store failure.
        """
        unknown = set(fields) - set(_RISK_STATE_COLUMNS)
        if unknown:
            raise RepositoryError(f"Unknown risk state fields: {sorted(unknown)}")
        if not fields:
            raise RepositoryError("merge_risk_state requires at least one field")

        columns: list[str] = []
        params: list[Any] = [patient_id]
        for name, value in fields.items():
            columns.append(_RISK_STATE_COLUMNS[name])
            if name == "reasons":
                value = json.dumps(list(value))
            params.append(value)

        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{col} = excluded.{col}" for col in columns)
        # Column names come only from the allow-list above
        query = (
            f"INSERT INTO risk_states (patient_id, {', '.join(columns)}) "
            f"VALUES (?, {placeholders}) "
            f"ON CONFLICT(patient_id) DO UPDATE SET {updates}"
        )
        with _store_errors("merge_risk_state"), self._db.transaction() as conn:
            conn.execute(query, params)

    def get_risk_state(self, patient_id: str) -> StoredRiskState | None:
        """Current risk state for a patient, or None if never evaluated."""
        with _store_errors("get_risk_state"):
            row = self._db.connection.execute(
                "SELECT * FROM risk_states WHERE patient_id = ?", (patient_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_risk_state(row)

    def list_risk_states(self, *, level: str | None = None) -> list[StoredRiskState]:
        """List risk states, optionally for one level, most recent check-in first."""
        query = "SELECT * FROM risk_states"
        params: list[Any] = []
        if level:
            query += " WHERE level = ?"
            params.append(level)
        query += " ORDER BY last_checkin_date DESC, patient_id"
        with _store_errors("list_risk_states"):
            rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_risk_state(row) for row in rows]

    def annotate_risk_state(self, patient_id: str, note: str) -> bool:
        """Attach a clinician note to the patient's existing risk record.

        A risk record only comes into being with an evaluated check-in, so a
        patient without one is left alone.

        Returns:
            True if the record existed and was annotated.
        """
        with _store_errors("annotate_risk_state"), self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE risk_states SET clinician_note = ?, note_updated_at = ? "
                "WHERE patient_id = ?",
                (note, self._now_iso(), patient_id),
            )
        if cursor.rowcount == 0:
            return False
        logger.info("Annotated risk state for %s", patient_id)
        return True

    # ------------------------------------------------------------------
    # Clinician actions
    # ------------------------------------------------------------------

    def create_action(
        self,
        patient_id: str,
        action_type: str,
        *,
        severity: str | None = None,
        title: str = "",
        details: str = "",
        created_by: str = "clinician",
    ) -> ClinicianAction:
        """Log a clinician action against a patient.

        Severity defaults to ``urgent`` for ED referrals and ``routine``
        otherwise; the title defaults to the action type's label.

        Raises:
            ValueError: If the action type or severity is not recognised.
        """
        if action_type not in ACTION_LABELS:
            raise ValueError(
                f"Invalid action type: {action_type!r}. Valid: {sorted(ACTION_LABELS)}"
            )
        if severity is None:
            severity = "urgent" if action_type in URGENT_ACTION_TYPES else "routine"
        if severity not in ACTION_SEVERITIES:
            raise ValueError(
                f"Invalid severity: {severity!r}. Valid: {list(ACTION_SEVERITIES)}"
            )

        action = ClinicianAction(
            id=self._new_id(),
            patient_id=patient_id,
            type=action_type,
            severity=severity,
            title=title.strip() or ACTION_LABELS[action_type],
            details=details.strip(),
            status="open",
            created_by=created_by,
            created_at=self._now_iso(),
        )
        with _store_errors("create_action"), self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO clinician_actions
                   (id, patient_id, type, severity, title, details, status, created_by, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    action.id,
                    action.patient_id,
                    action.type,
                    action.severity,
                    action.title,
                    action.details,
                    action.status,
                    action.created_by,
                    action.created_at,
                ),
            )
        logger.info("Created %s action %s for %s", action.type, action.id, patient_id)
        return action

    def set_action_status(self, action_id: str, status: str) -> bool:
        """Mark an action ``open`` or ``done``.

        Returns:
            True if the action exists, False otherwise.

        Raises:
            ValueError: If ``status`` is not recognised.
        """
        if status not in ACTION_STATUSES:
            raise ValueError(f"Invalid status: {status!r}. Valid: {list(ACTION_STATUSES)}")
        with _store_errors("set_action_status"), self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE clinician_actions SET status = ? WHERE id = ?",
                (status, action_id),
            )
        return cursor.rowcount > 0

    def list_actions(self, patient_id: str, *, limit: int = 50) -> list[ClinicianAction]:
        """List a patient's actions, newest first."""
        with _store_errors("list_actions"):
            rows = self._db.connection.execute(
                """SELECT * FROM clinician_actions WHERE patient_id = ?
                   ORDER BY created_at DESC LIMIT ?""",
                (patient_id, limit),
            ).fetchall()
        return [
            ClinicianAction(
                id=row["id"],
                patient_id=row["patient_id"],
                type=row["type"],
                severity=row["severity"],
                title=row["title"],
                details=row["details"],
                status=row["status"],
                created_by=row["created_by"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _row_to_checkin(self, row: Any) -> StoredCheckIn:
        return StoredCheckIn(
            id=row["id"],
            patient_id=row["patient_id"],
            date=row["date"],
            payload=self._enc.decrypt_document(row["payload_enc"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_risk_state(row: Any) -> StoredRiskState:
        reasons: list[str] = []
        if row["reasons_json"]:
            try:
                reasons = json.loads(row["reasons_json"])
            except (json.JSONDecodeError, TypeError):
                logger.warning("Unreadable reasons for risk state %s", row["patient_id"])

        return StoredRiskState(
            patient_id=row["patient_id"],
            level=row["level"],
            reasons=reasons,
            last_checkin_date=row["last_checkin_date"],
            updated_at=row["updated_at"],
            clinician_note=row["clinician_note"],
            note_updated_at=row["note_updated_at"],
        )
