"""Audit trail for the risk pipeline and the tool surface.

Each processed check-in event (updated, skipped or failed), tool call and
deletion leaves one ``audit_log`` row. Rows never carry health data. Inputs
are reduced to a SHA-256 of their canonical JSON, and the patient to a
SHA-256 of their identifier, so one patient's events can still be grouped.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from tipscompass.core.storage.database import CompassDatabase, DatabaseError

logger = logging.getLogger(__name__)

AuditAction = Literal["risk_evaluation", "tool_invocation", "data_delete"]
AuditStatus = Literal["success", "skipped", "failure"]


def _hash_input(data: Any) -> str:
    """Hex SHA-256 of ``data`` as canonical JSON; ``""`` if it is not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode()).hexdigest()


def patient_ref(patient_id: str) -> str:
    """Pseudonymous, stable reference for a patient identifier."""
    if not patient_id:
        return ""
    return hashlib.sha256(patient_id.encode()).hexdigest()


@dataclass
class AuditEvent:
    action: AuditAction
    tool_name: str = ""
    tool_input_hash: str = ""
    patient_ref: str = ""
    duration_ms: float | None = None
    status: AuditStatus = "success"
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_row(self, event_id: str, timestamp: str) -> tuple[Any, ...]:
        return (
            event_id,
            timestamp,
            self.action,
            self.tool_name or None,
            self.tool_input_hash or None,
            self.patient_ref or None,
            self.duration_ms,
            self.status,
            self.error_type,
            json.dumps(self.metadata, separators=(",", ":")) if self.metadata else None,
        )


def _where(**filters: tuple[str, Any]) -> tuple[str, list[Any]]:
    """Build a WHERE clause from ``name=(sql_condition, value)`` pairs, skipping empty values."""
    conditions = [cond for cond, value in filters.values() if value]
    params = [value for _, value in filters.values() if value]
    return ((" WHERE " + " AND ".join(conditions)) if conditions else ""), params


class AuditLogger:
    """Appends audit events to ``audit_log`` and answers trail queries.

    Recording is best effort: a write that fails is logged here and reported
    as an empty event id, and the operation being audited carries on.

    Usage::

        audit = AuditLogger(compass_db)
        audit.log_risk_evaluation(
            "on_checkin_write",
            patient_id="patient_001",
            metadata={"level": "yellow", "reason_count": 2},
        )
        audit.summary(since="2026-02-01T00:00:00+00:00")
    """

    def __init__(self, database: CompassDatabase) -> None:
        self._db = database

    def log_event(self, event: AuditEvent) -> str:
        """Append one event; returns its id, or ``""`` if it could not be written."""
        event_id = str(uuid.uuid4())
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, tool_name, tool_input_hash, patient_ref,
                        duration_ms, status, error_type, metadata_json)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    event.to_row(event_id, timestamp),
                )
        except (sqlite3.Error, DatabaseError, TypeError, ValueError):
            logger.exception("Audit event %s/%s lost", event.action, event.tool_name)
            return ""
        return event_id

    def log_risk_evaluation(
        self,
        trigger: str,
        *,
        patient_id: str = "",
        status: AuditStatus = "success",
        duration_ms: float | None = None,
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record how one check-in write event ended.

        Args:
            trigger: Handler that processed the event.
            patient_id: Resolved patient, hashed before storage.
            status: ``success``, ``skipped`` or ``failure``.
            duration_ms: Time spent after normalization.
            error_type: Exception class name on failure.
            metadata: Level, reason count, sample count or skip reason.
        """
        return self.log_event(AuditEvent(
            action="risk_evaluation",
            tool_name=trigger,
            patient_ref=patient_ref(patient_id),
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        patient_id: str = "",
        duration_ms: float | None = None,
        status: AuditStatus = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record a tool call. ``tool_input`` is stored only as a hash."""
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            patient_ref=patient_ref(patient_id),
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        patient_id: str = "",
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return self.log_event(AuditEvent(
            action="data_delete",
            tool_name=tool_name,
            patient_ref=patient_ref(patient_id),
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    def get_events(
        self,
        *,
        action: str | None = None,
        status: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Events matching every given filter, newest first."""
        where, params = _where(
            action=("action = ?", action),
            status=("status = ?", status),
            since=("timestamp >= ?", since),
        )
        rows = self._db.connection.execute(
            f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?",
            [*params, limit],
        ).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, status: str | None = None, since: str | None = None) -> int:
        where, params = _where(
            status=("status = ?", status),
            since=("timestamp >= ?", since),
        )
        row = self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log{where}", params
        ).fetchone()
        return row[0]

    def summary(self, *, since: str | None = None) -> dict[str, dict[str, int]]:
        """Event counts per action, split by status.

        Returns:
            ``{"risk_evaluation": {"success": 12, "skipped": 1}, ...}``
        """
        where, params = _where(since=("timestamp >= ?", since))
        rows = self._db.connection.execute(
            f"SELECT action, status, COUNT(*) AS n FROM audit_log{where} "
            "GROUP BY action, status ORDER BY action, status",
            params,
        ).fetchall()
        counts: dict[str, dict[str, int]] = {}
        for row in rows:
            counts.setdefault(row["action"], {})[row["status"]] = row["n"]
        return counts

    def prune(self, *, before: str) -> int:
        """Delete events older than ``before`` (ISO timestamp); returns how many."""
        with self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM audit_log WHERE timestamp < ?", (before,))
        if cursor.rowcount:
            logger.info("Pruned %d audit events older than %s", cursor.rowcount, before)
        return cursor.rowcount
