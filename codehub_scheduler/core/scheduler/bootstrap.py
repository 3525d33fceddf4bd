# codehub_scheduler/core/scheduler/bootstrap.py
"""Recovery of persisted schedules after a restart."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from codehub_scheduler.core.scheduler.models import (
    NEXT_RUN_COMPLETED,
    NEXT_RUN_NONE,
    TaskStatus,
)
from codehub_scheduler.core.scheduler.registry import JobRegistry
from codehub_scheduler.core.scheduler.repository import TaskRepository
from codehub_scheduler.core.scheduler.translator import next_occurrence

logger = logging.getLogger(__name__)


@dataclass
class RecoveryReport:
    """Task ids by what recovery did with them."""

    scheduled: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    unscheduled: list[str] = field(default_factory=list)


def recover_tasks(
    repository: TaskRepository,
    registry: JobRegistry,
    tz: tzinfo,
    now: datetime | None = None,
) -> RecoveryReport:
    """Re-arm every active task found in the store.

    One-shot tasks whose time passed while the process was down are
    marked Completed without a firing or history entry. Missed
    occurrences are never replayed.

    Args:
        repository: Task store.
        registry: Empty job registry to populate.
        tz: Scheduler time zone.
        now: Reference time. Defaults to the current time.

    Returns:
        RecoveryReport describing the outcome per task.
    """
    if now is None:
        now = datetime.now(tz)

    report = RecoveryReport()
    tasks = repository.list_by_status(TaskStatus.ACTIVE)
    logger.info("Found %d active tasks to schedule on startup", len(tasks))

    for task in tasks:
        next_run = next_occurrence(task.schedule, tz, now)

        if task.schedule.is_once and next_run == NEXT_RUN_COMPLETED:
            repository.update(
                task.id, status=TaskStatus.COMPLETED, next_run=NEXT_RUN_NONE
            )
            report.completed.append(task.id)
            logger.info(
                "One-time task %s (%s) elapsed while offline, marked completed",
                task.name,
                task.id,
            )
            continue

        task = repository.update(task.id, next_run=next_run) or task
        if registry.schedule(task):
            report.scheduled.append(task.id)
        else:
            report.unscheduled.append(task.id)

    logger.info(
        "Recovery finished: %d scheduled, %d completed, %d unscheduled",
        len(report.scheduled),
        len(report.completed),
        len(report.unscheduled),
    )
    return report
