# codehub_scheduler/core/scheduler/repository.py
"""SQLite repository for scheduled tasks and execution history.

Tasks are stored with their schedule descriptor and display state;
execution history is an append-only log. History rows keep only the
task id and a snapshot of its name, so they are retained when the task
itself is deleted.
"""

import json
import logging
import os
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from codehub_scheduler.core.scheduler.errors import PersistenceError
from codehub_scheduler.core.scheduler.models import (
    NEVER_RUN,
    ExecutionStatus,
    HistoryEntry,
    ScheduleSpec,
    TaskRecord,
    TaskStatus,
)

logger = logging.getLogger(__name__)

TASK_COLUMNS = (
    "id, name, endpoint, parameters, schedule_type, schedule_value, "
    "schedule_day, schedule_time, last_run, next_run, status, created_at, updated_at"
)
HISTORY_COLUMNS = "id, task_id, task_name, execution_time, status, output"


class TaskRepository:
    """Repository for storing and retrieving tasks and history from SQLite.

    A connection is opened per call. All calls are serialized on one
    lock so concurrent firings never lose updates to the same row.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str = "data/scheduler.db") -> None:
        """Initialize the TaskRepository.

        Creates the database directory and tables if they don't exist.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._lock = threading.RLock()

        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    endpoint TEXT NOT NULL,
                    parameters TEXT NOT NULL,
                    schedule_type TEXT NOT NULL,
                    schedule_value TEXT,
                    schedule_day TEXT,
                    schedule_time TEXT,
                    last_run TEXT NOT NULL,
                    next_run TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS execution_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    task_name TEXT NOT NULL,
                    execution_time TEXT NOT NULL,
                    status TEXT NOT NULL,
                    output TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_history_task_id
                ON execution_history(task_id)
            """)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and wrap sqlite errors."""
        with self._lock:
            try:
                conn = sqlite3.connect(self.db_path)
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError(str(e)) from e
            finally:
                conn.close()

    def _row_to_task(self, row: tuple) -> TaskRecord:
        """Convert a database row to a TaskRecord."""
        return TaskRecord(
            id=row[0],
            name=row[1],
            endpoint=row[2],
            parameters=json.loads(row[3]),
            schedule=ScheduleSpec(
                type=row[4],
                value=row[5],
                day=row[6],
                time=row[7],
            ),
            last_run=row[8],
            next_run=row[9],
            status=TaskStatus(row[10]),
            created_at=datetime.fromisoformat(row[11]),
            updated_at=datetime.fromisoformat(row[12]),
        )

    def _row_to_entry(self, row: tuple) -> HistoryEntry:
        """Convert a database row to a HistoryEntry."""
        return HistoryEntry(
            id=row[0],
            task_id=row[1],
            task_name=row[2],
            execution_time=row[3],
            status=ExecutionStatus(row[4]),
            output=row[5],
        )

    def create(
        self,
        name: str,
        endpoint: str,
        parameters: dict[str, str],
        schedule: ScheduleSpec,
        next_run: str,
    ) -> TaskRecord:
        """Create a new active task.

        Args:
            name: Human label.
            endpoint: Downstream endpoint template.
            parameters: Endpoint parameters.
            schedule: Schedule descriptor.
            next_run: Initial display value for the next run.

        Returns:
            Created TaskRecord with a fresh id.
        """
        task_id = str(uuid.uuid4())
        now = datetime.now()
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO tasks ({TASK_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    task_id,
                    name,
                    endpoint,
                    json.dumps(parameters),
                    schedule.type,
                    schedule.value,
                    schedule.day,
                    schedule.time,
                    NEVER_RUN,
                    next_run,
                    TaskStatus.ACTIVE.value,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )

        return TaskRecord(
            id=task_id,
            name=name,
            endpoint=endpoint,
            parameters=dict(parameters),
            schedule=schedule,
            last_run=NEVER_RUN,
            next_run=next_run,
            status=TaskStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )

    def get(self, task_id: str) -> TaskRecord | None:
        """Retrieve a task by ID.

        Returns:
            TaskRecord if found, None otherwise.
        """
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?",
                (task_id,),
            ).fetchone()
        return self._row_to_task(row) if row else None

    def list_all(self) -> list[TaskRecord]:
        """List every task, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks ORDER BY created_at, id"
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def list_by_status(self, status: TaskStatus) -> list[TaskRecord]:
        """List tasks with the given status, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE status = ? "
                "ORDER BY created_at, id",
                (status.value,),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def update(
        self,
        task_id: str,
        *,
        name: str | None = None,
        endpoint: str | None = None,
        parameters: dict[str, str] | None = None,
        schedule: ScheduleSpec | None = None,
        status: TaskStatus | None = None,
        last_run: str | None = None,
        next_run: str | None = None,
    ) -> TaskRecord | None:
        """Update the given fields of a task; None leaves a field as is.

        Returns:
            Updated TaskRecord, or None if the task does not exist.
        """
        updates: list[str] = []
        params: list = []

        if name is not None:
            updates.append("name = ?")
            params.append(name)
        if endpoint is not None:
            updates.append("endpoint = ?")
            params.append(endpoint)
        if parameters is not None:
            updates.append("parameters = ?")
            params.append(json.dumps(parameters))
        if schedule is not None:
            updates.extend(
                [
                    "schedule_type = ?",
                    "schedule_value = ?",
                    "schedule_day = ?",
                    "schedule_time = ?",
                ]
            )
            params.extend([schedule.type, schedule.value, schedule.day, schedule.time])
        if status is not None:
            updates.append("status = ?")
            params.append(status.value)
        if last_run is not None:
            updates.append("last_run = ?")
            params.append(last_run)
        if next_run is not None:
            updates.append("next_run = ?")
            params.append(next_run)

        updates.append("updated_at = ?")
        params.append(datetime.now().isoformat())
        params.append(task_id)

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?",
                params,
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?",
                (task_id,),
            ).fetchone()
        return self._row_to_task(row)

    def delete(self, task_id: str) -> bool:
        """Delete a task. Its history entries are kept.

        Returns:
            True if a task was deleted, False if it did not exist.
        """
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task %s deleted, history retained", task_id)
        return deleted

    def add_history(
        self,
        task_id: str,
        task_name: str,
        execution_time: str,
        status: ExecutionStatus,
        output: str,
    ) -> HistoryEntry:
        """Append one execution history entry."""
        with self._connect() as conn:
            return self._insert_history(
                conn, task_id, task_name, execution_time, status, output
            )

    def record_firing(
        self,
        task_id: str,
        task_name: str,
        execution_time: str,
        status: ExecutionStatus,
        output: str,
        next_run: str,
        task_status: TaskStatus | None = None,
        schedule: ScheduleSpec | None = None,
    ) -> HistoryEntry:
        """Write a firing's task state and history entry in one transaction.

        Sets ``last_run`` to the execution time. ``next_run`` and the
        status are only written while the stored schedule still equals
        ``schedule``, so a firing that outlives a schedule change cannot
        overwrite the new schedule's state. A status change additionally
        requires the task to still be Active. If the task was deleted
        while the firing was in flight only the history entry is written.

        Args:
            task_id: Task identifier.
            task_name: Task name at firing time.
            execution_time: ISO timestamp of the firing.
            status: Firing outcome.
            output: Serialized payload or error detail.
            next_run: New display value for the next run.
            task_status: New task status, or None to leave it unchanged.
            schedule: Schedule the firing ran with, or None to skip the check.

        Returns:
            The appended HistoryEntry.
        """
        updated_at = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(
                "UPDATE tasks SET last_run = ?, updated_at = ? WHERE id = ?",
                (execution_time, updated_at, task_id),
            )

            updates = ["next_run = ?"]
            params: list = [next_run]
            conditions = ["id = ?"]
            condition_params: list = [task_id]
            if task_status is not None:
                updates.append("status = ?")
                params.append(task_status.value)
                conditions.append("status = ?")
                condition_params.append(TaskStatus.ACTIVE.value)
            if schedule is not None:
                conditions.append(
                    "schedule_type = ? AND schedule_value IS ? "
                    "AND schedule_day IS ? AND schedule_time IS ?"
                )
                condition_params.extend(
                    [schedule.type, schedule.value, schedule.day, schedule.time]
                )

            cursor = conn.execute(
                f"UPDATE tasks SET {', '.join(updates)} "
                f"WHERE {' AND '.join(conditions)}",
                params + condition_params,
            )
            if cursor.rowcount == 0:
                logger.info(
                    "Task %s changed or was deleted during firing, "
                    "keeping its current schedule state",
                    task_id,
                )
            return self._insert_history(
                conn, task_id, task_name, execution_time, status, output
            )

    def _insert_history(
        self,
        conn: sqlite3.Connection,
        task_id: str,
        task_name: str,
        execution_time: str,
        status: ExecutionStatus,
        output: str,
    ) -> HistoryEntry:
        cursor = conn.execute(
            "INSERT INTO execution_history "
            "(task_id, task_name, execution_time, status, output) "
            "VALUES (?, ?, ?, ?, ?)",
            (task_id, task_name, execution_time, status.value, output),
        )
        return HistoryEntry(
            id=cursor.lastrowid,
            task_id=task_id,
            task_name=task_name,
            execution_time=execution_time,
            status=status,
            output=output,
        )

    def list_history(self, task_id: str | None = None) -> list[HistoryEntry]:
        """List execution history, newest first.

        Args:
            task_id: Optional task id to filter by.
        """
        query = f"SELECT {HISTORY_COLUMNS} FROM execution_history"
        params: tuple = ()
        if task_id is not None:
            query += " WHERE task_id = ?"
            params = (task_id,)
        query += " ORDER BY execution_time DESC, id DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_entry(row) for row in rows]
