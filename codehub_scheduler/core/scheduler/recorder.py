# codehub_scheduler/core/scheduler/recorder.py
"""State recorder for task firings.

Writes lastRun / nextRun / status transitions and the execution history
entry for every firing, scheduled or manual.
"""

import logging
from datetime import datetime, tzinfo

import tenacity

from codehub_scheduler.core.scheduler.errors import PersistenceError
from codehub_scheduler.core.scheduler.models import (
    NEXT_RUN_COMPLETED,
    ExecutionStatus,
    FiringResult,
    HistoryEntry,
    TaskSnapshot,
    TaskStatus,
)
from codehub_scheduler.core.scheduler.repository import TaskRepository
from codehub_scheduler.core.scheduler.translator import next_occurrence

logger = logging.getLogger(__name__)


def compose_output(result: FiringResult) -> str:
    """Prefix the firing output with any resolution warnings."""
    lines = [f"Warning: {warning}" for warning in result.warnings]
    lines.append(result.output)
    return "\n".join(lines)


class StateRecorder:
    """Persists the outcome of each firing.

    Status policy:
    - scheduled one-shot firing that succeeded: Completed
    - scheduled one-shot firing that failed: status unchanged, no retry
    - recurring firing: status unchanged, nextRun recomputed
    - manual firing: status unchanged

    A firing whose task was rescheduled while it was in flight only
    updates lastRun; nextRun and status belong to the new schedule.
    """

    def __init__(self, repository: TaskRepository, tz: tzinfo) -> None:
        self._repository = repository
        self._tz = tz

    async def record(
        self,
        task: TaskSnapshot,
        result: FiringResult,
        *,
        manual: bool = False,
        now: datetime | None = None,
    ) -> HistoryEntry | None:
        """Record one firing.

        Args:
            task: Snapshot of the task that fired.
            result: Firing outcome.
            manual: True for run-now firings.
            now: Firing time. Defaults to the current time.

        Returns:
            The appended history entry, or None if it could not be written
            for a background firing.

        Raises:
            PersistenceError: For manual firings when the store fails.
        """
        if now is None:
            now = datetime.now(self._tz)
        execution_time = now.isoformat()
        output = compose_output(result)

        task_status: TaskStatus | None = None
        if task.schedule.is_once and result.succeeded and not manual:
            task_status = TaskStatus.COMPLETED
            next_run = NEXT_RUN_COMPLETED
        else:
            next_run = next_occurrence(task.schedule, self._tz, now)

        try:
            entry = self._repository.record_firing(
                task_id=task.id,
                task_name=task.name,
                execution_time=execution_time,
                status=result.status,
                output=output,
                next_run=next_run,
                task_status=task_status,
                schedule=task.schedule,
            )
        except PersistenceError:
            if manual:
                raise
            logger.exception("Failed to record state for task %s", task.id)
            entry = await self._append_history(
                task.id, task.name, execution_time, result.status, output
            )
            if entry is None:
                logger.error("History entry for task %s was lost", task.id)
            return entry

        logger.info(
            "Recorded %s firing of task %s: status=%s, next_run=%s",
            "manual" if manual else "scheduled",
            task.id,
            result.status.value,
            next_run,
        )
        return entry

    @tenacity.retry(
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.1, max=1),
        retry=tenacity.retry_if_exception_type(PersistenceError),
        retry_error_callback=lambda _: None,  # Don't raise on final failure
        reraise=False,
    )
    async def _append_history(
        self,
        task_id: str,
        task_name: str,
        execution_time: str,
        status: ExecutionStatus,
        output: str,
    ) -> HistoryEntry | None:
        """Best-effort history append for background firings."""
        return self._repository.add_history(
            task_id, task_name, execution_time, status, output
        )
