from __future__ import annotations

import json
import sqlite3
import threading
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

from docket.errors import InvalidStateError, PlanConflictError
from docket.models import (
    BatchManifest,
    Progress,
    Task,
    TaskStatus,
    TaskType,
    ValidationResult,
    WorkUnit,
)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS project (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    root TEXT NOT NULL,
    manifest TEXT,
    total INTEGER NOT NULL DEFAULT 0,
    completed INTEGER NOT NULL DEFAULT 0,
    percentage INTEGER NOT NULL DEFAULT 0,
    phase TEXT NOT NULL DEFAULT 'preparation',
    time_remaining TEXT NOT NULL DEFAULT '0-0 min',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    priority INTEGER NOT NULL,
    definition TEXT NOT NULL,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    notes TEXT NOT NULL DEFAULT '[]',
    errors TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS work_units (
    batch_id TEXT PRIMARY KEY,
    idx INTEGER NOT NULL,
    strategy TEXT NOT NULL,
    tokens INTEGER NOT NULL,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS validations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL REFERENCES tasks(id),
    attempt INTEGER NOT NULL,
    passed INTEGER NOT NULL,
    quality_score INTEGER NOT NULL,
    report TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS task_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL REFERENCES tasks(id),
    from_status TEXT,
    to_status TEXT NOT NULL,
    at TEXT NOT NULL
);
"""

# Fields that live in their own columns rather than in the stored definition.
_STATE_FIELDS: Final = (
    "status",
    "created_at",
    "started_at",
    "completed_at",
    "attempts",
    "notes",
    "errors",
)

TRANSITIONS: Final[dict[TaskStatus, frozenset[TaskStatus]]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.SKIPPED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.ERROR}),
    TaskStatus.ERROR: frozenset({TaskStatus.PENDING, TaskStatus.SKIPPED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.SKIPPED: frozenset(),
}

TERMINAL: Final = frozenset({TaskStatus.COMPLETED, TaskStatus.SKIPPED})

MINUTES_PER_TASK: Final = (3, 5)


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def _identity(definition: str) -> tuple[str, str, tuple[str, ...]]:
    """The work a stored task id refers to: type, dependency and outputs."""
    data = json.loads(definition)
    return (
        data["type"],
        json.dumps(data["depends_on"], sort_keys=True),
        tuple(e["pattern"] for e in data["expected_outputs"]),
    )


def compute_progress(rows: list[dict[str, Any]]) -> Progress:
    """Progress snapshot from task rows (needs id, type, status, started_at)."""
    counts = Counter(r["status"] for r in rows)
    total = len(rows)
    completed = counts[TaskStatus.COMPLETED]
    skipped = counts[TaskStatus.SKIPPED]
    in_progress = [r for r in rows if r["status"] == TaskStatus.IN_PROGRESS]
    remaining = total - completed - skipped
    open_types = {r["type"] for r in rows if r["status"] not in TERMINAL}

    if total and remaining == 0:
        phase = "complete"
    elif counts[TaskStatus.PENDING] == total:
        phase = "preparation"
    elif TaskType.FILE_PROCESSING in open_types:
        phase = "file_processing"
    elif open_types & {TaskType.ANALYSIS, TaskType.MODULE_CREATION}:
        phase = "analysis"
    else:
        phase = "finalization"

    current = min(in_progress, key=lambda r: r["started_at"] or "", default=None)
    low, high = MINUTES_PER_TASK
    return Progress(
        total=total,
        completed=completed,
        skipped=skipped,
        errored=counts[TaskStatus.ERROR],
        in_progress=len(in_progress),
        pending=counts[TaskStatus.PENDING],
        remaining=remaining,
        percentage=round((completed + skipped) / total * 100) if total else 0,
        phase=phase,
        time_remaining=f"{remaining * low}-{remaining * high} min",
        current_task=current["id"] if current else None,
    )


class StateDB:
    """Single writer of task records for one project."""

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.Lock()

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> StateDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── Project ──────────────────────────────────────────────────────

    def save_plan(
        self,
        root: Path,
        tasks: list[Task],
        manifest: BatchManifest | None = None,
        units: list[WorkUnit] | None = None,
    ) -> int:
        """Store a plan, keeping the state of tasks that were already stored.

        A stored task keeps its status and history, and its work unit stays
        the snapshot taken when it was first planned. New priorities are
        applied to stored tasks that are pending or failed.

        Raises PlanConflictError, and writes nothing, if a stored task id
        would now describe different work or no longer be part of the plan.
        Returns the number of tasks added.
        """
        now = _now()
        definitions = {
            task.id: task.model_dump_json(exclude=set(_STATE_FIELDS)) for task in tasks
        }
        with self._lock:
            stored = {
                r["id"]: r
                for r in self._conn.execute("SELECT id, status, definition FROM tasks")
            }
            conflicts = sorted(
                task_id
                for task_id, row in stored.items()
                if task_id not in definitions
                or _identity(row["definition"]) != _identity(definitions[task_id])
            )
            if conflicts:
                raise PlanConflictError(conflicts)

            self._conn.execute(
                "INSERT INTO project (id, root, manifest, created_at, updated_at) "
                "VALUES (1, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET root=excluded.root, "
                "manifest=excluded.manifest, updated_at=excluded.updated_at",
                (
                    str(root),
                    manifest.model_dump_json() if manifest else None,
                    now,
                    now,
                ),
            )
            for unit in units or []:
                self._conn.execute(
                    "INSERT INTO work_units (batch_id, idx, strategy, tokens, data) "
                    "VALUES (?, ?, ?, ?, ?) ON CONFLICT(batch_id) DO NOTHING",
                    (
                        unit.batch_id,
                        unit.index,
                        unit.strategy.value,
                        unit.tokens,
                        unit.model_dump_json(),
                    ),
                )
            added = 0
            for task in tasks:
                if task.id in stored:
                    self._reprioritize(stored[task.id], task.priority)
                    continue
                self._conn.execute(
                    "INSERT INTO tasks (id, type, priority, definition, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (task.id, task.type.value, task.priority, definitions[task.id], now),
                )
                added += 1
                self._record_event(task.id, None, TaskStatus.PENDING, now)
            self._refresh_progress(now)
            self._conn.commit()
        return added

    def _reprioritize(self, row: sqlite3.Row, priority: int) -> None:
        if row["status"] not in (TaskStatus.PENDING, TaskStatus.ERROR):
            return
        data = json.loads(row["definition"])
        if data["priority"] == priority:
            return
        data["priority"] = priority
        self._conn.execute(
            "UPDATE tasks SET priority=?, definition=? WHERE id=?",
            (priority, json.dumps(data), row["id"]),
        )

    def _fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def get_manifest(self) -> BatchManifest | None:
        row = self._fetchone("SELECT manifest FROM project WHERE id=1")
        if row is None or row["manifest"] is None:
            return None
        return BatchManifest.model_validate_json(row["manifest"])

    def get_project(self) -> dict[str, Any] | None:
        row = self._fetchone("SELECT * FROM project WHERE id=1")
        return dict(row) if row else None

    def reset(self) -> None:
        """Delete the stored plan, its tasks and their history."""
        with self._lock:
            for table in ("task_events", "validations", "tasks", "work_units", "project"):
                self._conn.execute(f"DELETE FROM {table}")
            self._conn.commit()

    # ── Work units ───────────────────────────────────────────────────

    def get_work_unit(self, batch_id: str) -> WorkUnit | None:
        row = self._fetchone("SELECT data FROM work_units WHERE batch_id=?", (batch_id,))
        return WorkUnit.model_validate_json(row["data"]) if row else None

    def list_work_units(self) -> list[WorkUnit]:
        rows = self._fetchall("SELECT data FROM work_units ORDER BY idx")
        return [WorkUnit.model_validate_json(r["data"]) for r in rows]

    # ── Tasks ────────────────────────────────────────────────────────

    def _to_task(self, row: sqlite3.Row) -> Task:
        data = json.loads(row["definition"])
        data.update(
            status=row["status"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            attempts=row["attempts"],
            notes=json.loads(row["notes"]),
            errors=json.loads(row["errors"]),
        )
        return Task.model_validate(data)

    def get_task(self, task_id: str) -> Task | None:
        row = self._fetchone("SELECT * FROM tasks WHERE id=?", (task_id,))
        return self._to_task(row) if row else None

    def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        """Tasks in creation order, optionally filtered by status."""
        if status is None:
            rows = self._fetchall("SELECT * FROM tasks ORDER BY seq")
        else:
            rows = self._fetchall(
                "SELECT * FROM tasks WHERE status=? ORDER BY seq", (status.value,)
            )
        return [self._to_task(r) for r in rows]

    def status_map(self) -> dict[str, TaskStatus]:
        rows = self._fetchall("SELECT id, status FROM tasks")
        return {r["id"]: TaskStatus(r["status"]) for r in rows}

    def transition(
        self,
        task_id: str,
        to_status: TaskStatus,
        *,
        note: str | None = None,
        errors: list[str] | None = None,
    ) -> Task:
        """Move a task to *to_status* with a compare-and-set on its current status.

        Raises InvalidStateError for unknown tasks and disallowed transitions;
        nothing is written in that case.
        """
        now = _now()
        with self._lock:
            row = self._conn.execute(
                "SELECT status, notes FROM tasks WHERE id=?", (task_id,)
            ).fetchone()
            if row is None:
                raise InvalidStateError(task_id, "no such task")
            current = TaskStatus(row["status"])
            if to_status not in TRANSITIONS[current]:
                raise InvalidStateError(
                    task_id, f"cannot move from {current.value} to {to_status.value}"
                )

            fields: dict[str, Any] = {"status": to_status.value}
            if to_status is TaskStatus.IN_PROGRESS:
                fields["started_at"] = now
                fields["completed_at"] = None
            elif to_status in TERMINAL:
                fields["completed_at"] = now
            if note:
                fields["notes"] = json.dumps([*json.loads(row["notes"]), note])
            if errors is not None:
                fields["errors"] = json.dumps(errors)

            set_clause = ", ".join(f"{k}=?" for k in fields)
            if to_status is TaskStatus.IN_PROGRESS:
                set_clause += ", attempts=attempts+1"
            cur = self._conn.execute(
                f"UPDATE tasks SET {set_clause} WHERE id=? AND status=?",
                [*fields.values(), task_id, current.value],
            )
            if cur.rowcount != 1:
                self._conn.rollback()
                raise InvalidStateError(task_id, f"status changed from {current.value}")
            self._record_event(task_id, current, to_status, now)
            self._refresh_progress(now)
            self._conn.commit()
            updated = self._conn.execute(
                "SELECT * FROM tasks WHERE id=?", (task_id,)
            ).fetchone()
        return self._to_task(updated)

    def _record_event(
        self, task_id: str, from_status: TaskStatus | None, to_status: TaskStatus, at: str
    ) -> None:
        self._conn.execute(
            "INSERT INTO task_events (task_id, from_status, to_status, at) VALUES (?, ?, ?, ?)",
            (task_id, from_status.value if from_status else None, to_status.value, at),
        )

    def events(self, task_id: str) -> list[dict[str, Any]]:
        rows = self._fetchall(
            "SELECT * FROM task_events WHERE task_id=? ORDER BY id", (task_id,)
        )
        return [dict(r) for r in rows]

    # ── Validations ──────────────────────────────────────────────────

    def record_validation(self, result: ValidationResult, attempt: int) -> int:
        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO validations "
                "(task_id, attempt, passed, quality_score, report, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    result.task_id,
                    attempt,
                    int(result.passed),
                    result.quality_score,
                    result.model_dump_json(),
                    _now(),
                ),
            )
            self._conn.commit()
        return cur.lastrowid  # type: ignore[return-value]

    def validations(self, task_id: str) -> list[ValidationResult]:
        rows = self._fetchall(
            "SELECT report FROM validations WHERE task_id=? ORDER BY id", (task_id,)
        )
        return [ValidationResult.model_validate_json(r["report"]) for r in rows]

    # ── Progress ─────────────────────────────────────────────────────

    def progress(self) -> Progress:
        with self._lock:
            return self._progress()

    def _progress(self) -> Progress:
        rows = self._conn.execute(
            "SELECT id, type, status, started_at FROM tasks ORDER BY seq"
        ).fetchall()
        return compute_progress([dict(r) for r in rows])

    def _refresh_progress(self, now: str) -> None:
        snapshot = self._progress()
        self._conn.execute(
            "UPDATE project SET total=?, completed=?, percentage=?, phase=?, "
            "time_remaining=?, updated_at=? WHERE id=1",
            (
                snapshot.total,
                snapshot.completed,
                snapshot.percentage,
                snapshot.phase,
                snapshot.time_remaining,
                now,
            ),
        )
