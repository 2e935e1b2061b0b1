"""SQLite store for check-ins, risk states, clinician actions and the audit trail.

The schema is versioned: V1 holds the patient documents, V2 adds the audit
log. Opening a store applies whatever versions it is missing.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per patient per day; raw submitted document kept encrypted
CREATE TABLE IF NOT EXISTS checkins (
    id            TEXT PRIMARY KEY,
    patient_id    TEXT NOT NULL DEFAULT '',
    date          TEXT NOT NULL DEFAULT '',
    payload_enc   TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

-- Current risk per patient; clinician_* columns belong to other writers
CREATE TABLE IF NOT EXISTS risk_states (
    patient_id        TEXT PRIMARY KEY,
    level             TEXT,
    reasons_json      TEXT,
    last_checkin_date TEXT,
    updated_at        TEXT,
    clinician_note    TEXT,
    note_updated_at   TEXT
);

CREATE TABLE IF NOT EXISTS clinician_actions (
    id          TEXT PRIMARY KEY,
    patient_id  TEXT NOT NULL,
    type        TEXT NOT NULL,
    severity    TEXT NOT NULL,
    title       TEXT NOT NULL,
    details     TEXT NOT NULL DEFAULT '',
    status      TEXT NOT NULL DEFAULT 'open',
    created_by  TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_checkins_patient_date ON checkins(patient_id, date);
CREATE INDEX IF NOT EXISTS idx_risk_states_level     ON risk_states(level);
CREATE INDEX IF NOT EXISTS idx_actions_patient       ON clinician_actions(patient_id, created_at);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (risk evaluations, tool calls, deletions)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    patient_ref     TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_status    ON audit_log(status);
"""


# Applied in order; each entry lifts the store to that version.
_MIGRATIONS: tuple[tuple[int, str, str], ...] = (
    (1, _SCHEMA_V1, "check-ins, risk states, clinician actions"),
    (2, _SCHEMA_V2, "audit_log"),
)


class DatabaseError(Exception):
    """Raised when the store is used before it is opened."""


class CompassDatabase:
    """Owns the single SQLite connection behind the Compass repository.

    ``":memory:"`` gives a throwaway store for tests; any other path is a file,
    created along with its parent directory on first use.

    Usage::

        with CompassDatabase("~/.tipscompass/compass.db") as db:
            with db.transaction() as conn:
                conn.execute(...)
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        """The open connection.

        Raises:
            DatabaseError: If ``initialize()`` has not been called, or the
                store was closed.
        """
        if self._conn is None:
            raise DatabaseError(f"Compass store {self._db_path!r} is not open")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and bring the schema up to ``SCHEMA_VERSION``.

        Calling it again on an open store does nothing.
        """
        if self._conn is not None:
            return

        target = self._db_path
        if target != ":memory:":
            db_file = Path(target).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_file)

        conn = sqlite3.connect(target)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        self._conn = conn

        self._migrate()
        logger.info("Compass store open at %s", self._db_path)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection; commit if the block succeeds, roll back if it raises."""
        conn = self.connection
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    def _migrate(self) -> None:
        conn = self.connection
        # schema_version itself lives in V1, which is idempotent DDL
        conn.executescript(_SCHEMA_V1)
        current = self.get_schema_version()

        for version, ddl, label in _MIGRATIONS:
            if version <= current:
                continue
            conn.executescript(ddl)
            logger.info("Applied schema V%d: %s", version, label)

        if current < SCHEMA_VERSION:
            with self.transaction():
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
                )
            logger.info("Schema moved from V%d to V%d", current, SCHEMA_VERSION)

    def get_schema_version(self) -> int:
        """Highest applied schema version (0 for a store with none recorded)."""
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.info("Compass store closed: %s", self._db_path)

    def __enter__(self) -> CompassDatabase:
        self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
