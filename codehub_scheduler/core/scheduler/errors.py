# codehub_scheduler/core/scheduler/errors.py
"""Exceptions raised by the scheduler core."""


class SchedulerError(Exception):
    """Base class for scheduler errors."""


class ValidationError(SchedulerError):
    """Raised when a create/update request lacks required fields."""


class NotFoundError(SchedulerError):
    """Raised when a task id does not exist."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class ScheduleTranslationError(SchedulerError):
    """Raised when a schedule descriptor cannot be turned into a trigger."""


class DownstreamCallError(SchedulerError):
    """Raised when the downstream engine call fails.

    Carries the HTTP status code and response body when a response was
    received; both are None for transport failures and timeouts.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class PersistenceError(SchedulerError):
    """Raised when the task store cannot be read or written."""
