# codehub_scheduler/core/scheduler/service.py
"""Task management operations used by the admin API.

Every change to a task goes through the store first and then through
cancel + schedule on the registry; armed jobs are never edited in place.
"""

import logging
from datetime import datetime, tzinfo
from typing import Any

from codehub_scheduler.core.scheduler.errors import NotFoundError, ValidationError
from codehub_scheduler.core.scheduler.models import (
    HistoryEntry,
    ScheduleSpec,
    TaskRecord,
    TaskStatus,
)
from codehub_scheduler.core.scheduler.registry import ArmedJob, JobRegistry
from codehub_scheduler.core.scheduler.repository import TaskRepository
from codehub_scheduler.core.scheduler.runner import TaskRunner
from codehub_scheduler.core.scheduler.translator import next_occurrence

logger = logging.getLogger(__name__)

# Statuses an operator may set directly
SETTABLE_STATUSES = (TaskStatus.ACTIVE, TaskStatus.PAUSED)


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing required task field: {field_name}")
    return value


def _normalize_parameters(parameters: Any) -> dict[str, str]:
    if parameters is None:
        return {}
    if not isinstance(parameters, dict):
        raise ValidationError("Task parameters must be an object")
    return {str(k): str(v) for k, v in parameters.items() if v is not None}


def _normalize_schedule(schedule: Any) -> ScheduleSpec:
    if not isinstance(schedule, dict) or not schedule.get("type"):
        raise ValidationError("Missing required task field: schedule.type")
    return ScheduleSpec.from_dict(schedule)


class TaskService:
    """Create, update, delete, list and run tasks."""

    def __init__(
        self,
        repository: TaskRepository,
        registry: JobRegistry,
        runner: TaskRunner,
        tz: tzinfo,
    ) -> None:
        self._repository = repository
        self._registry = registry
        self._runner = runner
        self._tz = tz

    def _get_or_raise(self, task_id: str) -> TaskRecord:
        task = self._repository.get(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    def _refresh_next_run(self, task: TaskRecord, now: datetime) -> TaskRecord:
        """Recompute the display next run of an active task."""
        if task.status == TaskStatus.ACTIVE:
            task.next_run = next_occurrence(task.schedule, self._tz, now)
        return task

    def list_tasks(self) -> list[TaskRecord]:
        """List all tasks with freshly computed next runs."""
        now = datetime.now(self._tz)
        return [
            self._refresh_next_run(task, now) for task in self._repository.list_all()
        ]

    def get_task(self, task_id: str) -> TaskRecord:
        """Get a task with a freshly computed next run.

        Raises:
            NotFoundError: If the task does not exist.
        """
        return self._refresh_next_run(
            self._get_or_raise(task_id), datetime.now(self._tz)
        )

    def create_task(
        self,
        name: Any,
        endpoint: Any,
        parameters: Any,
        schedule: Any,
    ) -> TaskRecord:
        """Persist a new task and arm it.

        A schedule that cannot be translated does not fail creation; the
        task is stored and stays unscheduled.

        Raises:
            ValidationError: If name, endpoint or schedule.type is missing.
        """
        name = _require_text(name, "name")
        endpoint = _require_text(endpoint, "endpoint")
        spec = _normalize_schedule(schedule)
        params = _normalize_parameters(parameters)

        task = self._repository.create(
            name=name,
            endpoint=endpoint,
            parameters=params,
            schedule=spec,
            next_run=next_occurrence(spec, self._tz),
        )
        self._registry.schedule(task)

        logger.info("Task %s created: name=%s, schedule=%s", task.id, name, spec.type)
        return task

    def update_task(self, task_id: str, changes: dict[str, Any]) -> TaskRecord:
        """Merge changes onto a task, then cancel and re-arm its job.

        Supported keys: name, endpoint, parameters, schedule, status.
        A new schedule reactivates a completed or failed task; paused
        tasks stay paused until their status is set back to Active.

        Raises:
            NotFoundError: If the task does not exist.
            ValidationError: If a provided field is empty or invalid.
        """
        existing = self._get_or_raise(task_id)

        name = changes.get("name")
        if name is not None:
            _require_text(name, "name")
        endpoint = changes.get("endpoint")
        if endpoint is not None:
            _require_text(endpoint, "endpoint")
        parameters = (
            _normalize_parameters(changes["parameters"])
            if changes.get("parameters") is not None
            else None
        )
        schedule = (
            _normalize_schedule(changes["schedule"])
            if changes.get("schedule") is not None
            else None
        )

        status: TaskStatus | None = None
        if changes.get("status") is not None:
            try:
                status = TaskStatus(changes["status"])
            except ValueError:
                status = None
            if status not in SETTABLE_STATUSES:
                raise ValidationError(
                    f"Status must be one of: {', '.join(SETTABLE_STATUSES)}"
                )
        elif schedule is not None and existing.status != TaskStatus.PAUSED:
            status = TaskStatus.ACTIVE

        effective_status = status or existing.status
        effective_schedule = schedule or existing.schedule
        next_run = None
        if effective_status == TaskStatus.ACTIVE:
            next_run = next_occurrence(effective_schedule, self._tz)

        updated = self._repository.update(
            task_id,
            name=name,
            endpoint=endpoint,
            parameters=parameters,
            schedule=schedule,
            status=status,
            next_run=next_run,
        )
        if updated is None:
            raise NotFoundError(task_id)

        self._registry.cancel(task_id)
        if updated.status == TaskStatus.ACTIVE:
            self._registry.schedule(updated)

        logger.info("Task %s updated: status=%s", task_id, updated.status.value)
        return updated

    def delete_task(self, task_id: str) -> None:
        """Cancel a task's job and delete it. History is retained.

        Raises:
            NotFoundError: If the task does not exist.
        """
        self._get_or_raise(task_id)
        self._registry.cancel(task_id)
        if not self._repository.delete(task_id):
            raise NotFoundError(task_id)

    async def run_now(self, task_id: str) -> HistoryEntry:
        """Fire a task immediately, outside its trigger.

        The task's own job is left untouched.

        Raises:
            NotFoundError: If the task does not exist.
            PersistenceError: If the firing cannot be recorded.
        """
        task = self._get_or_raise(task_id)
        entry = await self._runner.fire(task.snapshot(), manual=True)
        logger.info("Task %s run manually: %s", task_id, entry.status.value)
        return entry

    def list_history(self, task_id: str | None = None) -> list[HistoryEntry]:
        """Execution history, newest first."""
        return self._repository.list_history(task_id)

    def list_jobs(self) -> list[ArmedJob]:
        """Live registry entries."""
        return self._registry.list()
