# codehub_scheduler/core/scheduler/registry.py
"""Job registry on top of APScheduler.

Owns the live mapping of task id to armed job. The registry is created
and torn down with the application and handed to whoever needs it; it
is not a process-wide singleton.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MAX_INSTANCES,
    JobEvent,
)
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from codehub_scheduler.core.scheduler.errors import ScheduleTranslationError
from codehub_scheduler.core.scheduler.models import TaskRecord, TaskSnapshot
from codehub_scheduler.core.scheduler.translator import (
    CronExpression,
    build_trigger,
    next_fire_time,
    translate,
)

logger = logging.getLogger(__name__)

FireCallback = Callable[[TaskSnapshot], Awaitable[Any]]


@dataclass
class ArmedJob:
    """A live registry entry.

    Attributes:
        snapshot: Immutable task copy the job fires with.
        cron: The crontab expression the job was armed with.
        job: Underlying APScheduler job.
    """

    snapshot: TaskSnapshot
    cron: CronExpression
    job: Job

    @property
    def next_run_time(self) -> datetime | None:
        return getattr(self.job, "next_run_time", None)


class JobRegistry:
    """Registry of armed jobs, one per task id at most.

    Manages jobs with:
    - In-memory job store (rebuilt from the task store on every start)
    - AsyncIO scheduler sharing the application's event loop
    - Skip-if-running: a tick arriving while the previous firing of the
      same task is still in flight is dropped
    """

    def __init__(
        self,
        on_fire: FireCallback,
        tz: tzinfo,
        misfire_grace_time: int = 60,
    ) -> None:
        """Initialize the registry.

        Args:
            on_fire: Coroutine function run for every firing.
            tz: Scheduler time zone.
            misfire_grace_time: Seconds a late tick may still run.
        """
        self._on_fire = on_fire
        self._tz = tz
        self._jobs: dict[str, ArmedJob] = {}
        self._running = False

        self._scheduler = AsyncIOScheduler(
            timezone=tz,
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Only one instance of each job
                "misfire_grace_time": misfire_grace_time,
            },
        )

        self._scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES,
        )

    def start(self) -> None:
        """Start the underlying scheduler."""
        if not self._running:
            self._scheduler.start()
            self._running = True
            logger.info("Job registry started")

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the scheduler and drop every entry.

        Args:
            wait: Whether to wait for running jobs to complete.
        """
        if self._running:
            # AsyncIOScheduler may finish stopping on a later loop iteration
            self._scheduler.shutdown(wait=wait)
            self._running = False
        self._jobs.clear()
        logger.info("Job registry shutdown")

    @property
    def is_running(self) -> bool:
        return self._running

    def schedule(self, task: TaskRecord) -> bool:
        """Arm a job for a task, replacing any existing one.

        The job is bound to a snapshot of the task taken now.

        Args:
            task: Task to arm.

        Returns:
            True if a job was armed, False if the schedule could not be
            translated or has no future occurrence.
        """
        self.cancel(task.id)

        snapshot = task.snapshot()
        try:
            cron = translate(snapshot.schedule, self._tz)
            trigger = build_trigger(cron, self._tz)
            first_run = next_fire_time(cron, self._tz, datetime.now(self._tz))
        except ScheduleTranslationError as e:
            logger.error(
                "Task %s (%s) left unscheduled: %s", task.name, task.id, e
            )
            return False

        if first_run is None:
            logger.info(
                "Task %s (%s) has no future occurrence, not scheduling",
                task.name,
                task.id,
            )
            return False

        job = self._scheduler.add_job(
            self._dispatch,
            trigger,
            args=[snapshot],
            id=task.id,
            name=task.name,
            next_run_time=first_run,
            replace_existing=True,
        )
        self._jobs[task.id] = ArmedJob(snapshot=snapshot, cron=cron, job=job)

        logger.info(
            "Task scheduled: id=%s, name=%s, cron='%s', next_run=%s",
            task.id,
            task.name,
            cron.expression,
            first_run.isoformat(),
        )
        return True

    def cancel(self, task_id: str) -> bool:
        """Cancel a task's job. Idempotent.

        Returns:
            True if a job was cancelled, False if none was armed.
        """
        armed = self._jobs.pop(task_id, None)
        if armed is None:
            return False

        self._remove_job(armed)
        logger.info("Task %s unscheduled", task_id)
        return True

    def get(self, task_id: str) -> ArmedJob | None:
        """Get the live entry for a task, if any."""
        return self._jobs.get(task_id)

    def list(self) -> list[ArmedJob]:
        """List live entries, soonest first."""
        return sorted(
            self._jobs.values(),
            key=lambda armed: armed.next_run_time
            or datetime.max.replace(tzinfo=self._tz),
        )

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    async def _dispatch(self, snapshot: TaskSnapshot) -> None:
        """Run one firing; one-shot jobs deregister right after."""
        try:
            await self._on_fire(snapshot)
        finally:
            if snapshot.schedule.is_once:
                self._release(snapshot)

    def _release(self, snapshot: TaskSnapshot) -> None:
        """Drop a fired one-shot entry unless it was re-armed meanwhile."""
        armed = self._jobs.get(snapshot.id)
        if armed is None or armed.snapshot is not snapshot:
            return

        del self._jobs[snapshot.id]
        self._remove_job(armed)
        logger.info(
            "One-time task %s (%s) fired and deregistered",
            snapshot.name,
            snapshot.id,
        )

    def _remove_job(self, armed: ArmedJob) -> None:
        try:
            armed.job.remove()
        except JobLookupError:
            # Already gone, e.g. a one-shot trigger with no next fire time
            pass

    def _on_job_event(self, event: JobEvent) -> None:
        """Handle job events for logging.

        Args:
            event: Job event from APScheduler.
        """
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning(
                "Skipped tick for task %s: previous firing still running",
                event.job_id,
            )
        elif getattr(event, "exception", None):
            logger.error("Job %s failed: %s", event.job_id, str(event.exception))
        else:
            logger.debug("Job %s completed", event.job_id)
