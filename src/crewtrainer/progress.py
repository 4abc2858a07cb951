"""SQLite persistence for employees, training schedules, and session checkpoints."""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from .errors import PersistenceError, SessionNotFoundError
from .models import Employee, ScheduleDescriptor, SessionRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_SCHEDULE_SELECT = """
    SELECT s.id, s.training_type, s.competency_type, s.competency_phase,
           s.trainee_id, trainee.display_name AS trainee_name,
           s.trainer_id, trainer.display_name AS trainer_name,
           s.training_date, s.status, s.notes
    FROM training_schedule AS s
    JOIN employees AS trainee ON trainee.id = s.trainee_id
    JOIN employees AS trainer ON trainer.id = s.trainer_id
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


class SessionStore:
    """Database access layer for training sessions and their checkpoint fields."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize database and schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, _now()),
                )

    def _migrate_to_v1(self) -> None:
        """Create employee, schedule, session, and checkpoint tables."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS employees (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    display_name TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS training_schedule (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    trainee_id INTEGER NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
                    trainer_id INTEGER NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
                    training_type TEXT NOT NULL,
                    competency_type TEXT,
                    competency_phase TEXT,
                    training_date TEXT NOT NULL,
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT 'scheduled',
                    created_at TEXT NOT NULL
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS training_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    training_schedule_id INTEGER NOT NULL REFERENCES training_schedule(id) ON DELETE CASCADE,
                    trainer_id INTEGER NOT NULL,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    status TEXT NOT NULL DEFAULT 'in_progress'
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS session_checkpoints (
                    session_id INTEGER NOT NULL REFERENCES training_sessions(id) ON DELETE CASCADE,
                    field_name TEXT NOT NULL,
                    value INTEGER NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (session_id, field_name)
                )
                """)

    def list_employees(self) -> list[Employee]:
        """Return employees ordered by name."""
        rows = self._conn.execute("SELECT id, display_name FROM employees ORDER BY display_name").fetchall()
        return [Employee(id=int(row["id"]), display_name=str(row["display_name"])) for row in rows]

    def create_employee(self, display_name: str) -> Employee:
        """Create a new employee."""
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO employees (display_name, created_at) VALUES (?, ?)",
                (display_name, _now()),
            )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Could not create employee.")
        return Employee(id=int(row_id), display_name=display_name)

    def get_employee(self, employee_id: int) -> Employee | None:
        """Get one employee by id."""
        row = self._conn.execute("SELECT id, display_name FROM employees WHERE id = ?", (employee_id,)).fetchone()
        if row is None:
            return None
        return Employee(id=int(row["id"]), display_name=str(row["display_name"]))

    def delete_employee(self, employee_id: int) -> bool:
        """Delete an employee with their schedules, sessions, and checkpoints."""
        with self._conn:
            cursor = self._conn.execute("DELETE FROM employees WHERE id = ?", (employee_id,))
        return cursor.rowcount > 0

    def schedule_training(
        self,
        trainee_id: int,
        trainer_id: int,
        training_type: str,
        competency_type: str | None,
        competency_phase: str | None,
        training_date: str,
        notes: str | None = None,
    ) -> ScheduleDescriptor:
        """Insert a scheduled training and return its descriptor."""
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO training_schedule (
                    trainee_id,
                    trainer_id,
                    training_type,
                    competency_type,
                    competency_phase,
                    training_date,
                    notes,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (trainee_id, trainer_id, training_type, competency_type, competency_phase, training_date, notes, _now()),
            )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Could not schedule training.")
        return self.get_schedule(int(row_id))

    def get_schedule(self, schedule_id: int) -> ScheduleDescriptor:
        """Return one schedule by id."""
        row = self._conn.execute(_SCHEDULE_SELECT + " WHERE s.id = ?", (schedule_id,)).fetchone()
        if row is None:
            raise SessionNotFoundError(f"Training schedule {schedule_id} not found.", context={"schedule_id": schedule_id})
        return _schedule_from_row(row)

    def list_schedules(self, status: str | None = "scheduled") -> list[ScheduleDescriptor]:
        """Return schedules ordered by training date, optionally filtered by status."""
        if status is None:
            rows = self._conn.execute(_SCHEDULE_SELECT + " ORDER BY s.training_date, s.id").fetchall()
        else:
            rows = self._conn.execute(
                _SCHEDULE_SELECT + " WHERE s.status = ? ORDER BY s.training_date, s.id",
                (status,),
            ).fetchall()
        return [_schedule_from_row(row) for row in rows]

    def start_session(self, schedule_id: int, trainer_id: int) -> int:
        """Start a session for a schedule, reusing the schedule's in-progress session if present."""
        existing = self._conn.execute(
            "SELECT id FROM training_sessions WHERE training_schedule_id = ? AND status = 'in_progress'",
            (schedule_id,),
        ).fetchone()
        if existing is not None:
            return int(existing["id"])
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO training_sessions (training_schedule_id, trainer_id, started_at, status)
                VALUES (?, ?, ?, 'in_progress')
                """,
                (schedule_id, trainer_id, _now()),
            )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Could not start session.")
        return int(row_id)

    def load_session(self, session_id: int, field_names: list[str]) -> SessionRecord:
        """Return the session with only the requested checkpoint fields."""
        row = self._conn.execute(
            """
            SELECT ts.id, ts.training_schedule_id, ts.status, ts.started_at, ts.completed_at, s.trainee_id
            FROM training_sessions AS ts
            JOIN training_schedule AS s ON s.id = ts.training_schedule_id
            WHERE ts.id = ?
            """,
            (session_id,),
        ).fetchone()
        if row is None:
            raise SessionNotFoundError(f"Training session {session_id} not found.", context={"session_id": session_id})

        fields: dict[str, bool] = {}
        if field_names:
            placeholders = ", ".join("?" for _ in field_names)
            checkpoint_rows = self._conn.execute(
                f"""
                SELECT field_name, value
                FROM session_checkpoints
                WHERE session_id = ? AND field_name IN ({placeholders})
                """,
                (session_id, *field_names),
            ).fetchall()
            fields = {str(item["field_name"]): bool(item["value"]) for item in checkpoint_rows}

        return SessionRecord(
            id=int(row["id"]),
            schedule_id=int(row["training_schedule_id"]),
            trainee_id=int(row["trainee_id"]),
            fields=fields,
            status=str(row["status"]),
            started_at=str(row["started_at"]),
            completed_at=str(row["completed_at"]) if row["completed_at"] is not None else None,
        )

    def list_active_sessions(self, trainer_id: int) -> list[tuple[int, ScheduleDescriptor, str]]:
        """Return (session id, schedule, started_at) for a trainer's in-progress sessions, newest first."""
        rows = self._conn.execute(
            """
            SELECT id, training_schedule_id, started_at
            FROM training_sessions
            WHERE trainer_id = ? AND status = 'in_progress'
            ORDER BY started_at DESC, id DESC
            """,
            (trainer_id,),
        ).fetchall()
        return [
            (int(row["id"]), self.get_schedule(int(row["training_schedule_id"])), str(row["started_at"]))
            for row in rows
        ]

    def update_field(self, session_id: int, field_name: str, value: bool) -> None:
        """Write one checkpoint field; concurrent writers resolve last-write-wins."""
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO session_checkpoints (session_id, field_name, value, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(session_id, field_name) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (session_id, field_name, int(value), _now()),
                )
        except sqlite3.Error as exc:
            logger.error("Failed to write %s for session %s: %s", field_name, session_id, exc)
            raise PersistenceError(
                f"Could not save '{field_name}' for session {session_id}.",
                context={"session_id": session_id, "field_name": field_name},
            ) from exc

    def record_completion(self, session_id: int, schedule_id: int) -> str:
        """Mark a session and its schedule completed; return the completion timestamp."""
        completed_at = _now()
        try:
            with self._conn:
                self._conn.execute(
                    "UPDATE training_sessions SET status = 'completed', completed_at = ? WHERE id = ?",
                    (completed_at, session_id),
                )
                self._conn.execute(
                    "UPDATE training_schedule SET status = 'completed' WHERE id = ?",
                    (schedule_id,),
                )
        except sqlite3.Error as exc:
            logger.error("Failed to record completion for session %s: %s", session_id, exc)
            raise PersistenceError(
                f"Could not record completion for session {session_id}.",
                context={"session_id": session_id},
            ) from exc
        return completed_at

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def _schedule_from_row(row: sqlite3.Row) -> ScheduleDescriptor:
    return ScheduleDescriptor(
        id=int(row["id"]),
        training_type=str(row["training_type"]),
        competency_type=str(row["competency_type"]) if row["competency_type"] is not None else None,
        competency_phase=str(row["competency_phase"]) if row["competency_phase"] is not None else None,
        trainee_id=int(row["trainee_id"]),
        trainee_name=str(row["trainee_name"]),
        trainer_id=int(row["trainer_id"]),
        trainer_name=str(row["trainer_name"]),
        training_date=str(row["training_date"]),
        status=str(row["status"]),
        notes=str(row["notes"]) if row["notes"] is not None else None,
    )
