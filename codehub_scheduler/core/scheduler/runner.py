# codehub_scheduler/core/scheduler/runner.py
"""Runs a single task firing.

Called by the job registry when a task's trigger fires, and by the API
for run-now requests. Every firing calls the downstream engine once and
is recorded once; nothing raised while executing escapes a scheduled
firing.
"""

import logging

from codehub_scheduler.core.scheduler.errors import DownstreamCallError
from codehub_scheduler.core.scheduler.executor import (
    DownstreamExecutor,
    prepare_request,
)
from codehub_scheduler.core.scheduler.models import (
    ExecutionStatus,
    FiringResult,
    HistoryEntry,
    TaskSnapshot,
)
from codehub_scheduler.core.scheduler.recorder import StateRecorder
from codehub_scheduler.utils.logging import set_request_id

logger = logging.getLogger(__name__)


class TaskRunner:
    """Executes task firings and hands their outcome to the recorder."""

    def __init__(self, executor: DownstreamExecutor, recorder: StateRecorder) -> None:
        self._executor = executor
        self._recorder = recorder

    async def fire(
        self, task: TaskSnapshot, *, manual: bool = False
    ) -> HistoryEntry | None:
        """Execute one firing of a task.

        Args:
            task: Snapshot of the task to run.
            manual: True for run-now firings.

        Returns:
            The recorded history entry, or None if a scheduled firing
            could not be recorded.

        Raises:
            PersistenceError: Only for manual firings.
        """
        set_request_id(f"task:{task.id}")
        logger.info(
            "Executing %s task: id=%s, name=%s, endpoint=%s",
            "manual" if manual else "scheduled",
            task.id,
            task.name,
            task.endpoint,
        )

        result = await self._execute(task)

        if manual:
            return await self._recorder.record(task, result, manual=True)

        try:
            return await self._recorder.record(task, result)
        except Exception:
            logger.exception("Failed to record firing of task %s", task.id)
            return None

    async def _execute(self, task: TaskSnapshot) -> FiringResult:
        """Call the downstream engine and convert any failure into a result."""
        warnings: list[str] = []
        try:
            request = prepare_request(
                self._executor.base_url, task.endpoint, task.parameters
            )
            warnings = request.warnings
            payload = await self._executor.execute(request)
        except DownstreamCallError as e:
            output = f"Error executing task '{task.name}': {e}"
            if e.response_body:
                output += f"\nResponse Data: {e.response_body}"
            logger.error("Task %s failed: %s", task.id, str(e))
            return FiringResult(ExecutionStatus.FAILED, output, warnings)
        except Exception as e:
            logger.exception("Task %s failed unexpectedly: %s", task.id, e)
            return FiringResult(
                ExecutionStatus.FAILED,
                f"Error executing task '{task.name}': {e}",
                warnings,
            )

        logger.info("Task %s executed successfully", task.id)
        return FiringResult(ExecutionStatus.COMPLETED, payload, warnings)
