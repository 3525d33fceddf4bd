# codehub_scheduler/core/scheduler/models.py
"""Data models for the scheduler module.

Tasks and their schedule descriptors as they are stored, the immutable
snapshots bound to armed jobs, and execution history entries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any

# Display sentinels for lastRun / nextRun
NEVER_RUN = "N/A"
NEXT_RUN_COMPLETED = "Completed"
NEXT_RUN_NONE = "N/A"
NEXT_RUN_UNSCHEDULED = "Unscheduled"


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    ACTIVE = "Active"
    COMPLETED = "Completed"
    FAILED = "Failed"
    PAUSED = "Paused"


class ExecutionStatus(StrEnum):
    """Outcome of a single firing."""

    COMPLETED = "Completed"
    FAILED = "Failed"


class ScheduleType(StrEnum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ScheduleSpec:
    """Schedule descriptor exactly as submitted and persisted.

    The type is kept as free text so that a task with an unknown or
    malformed schedule can still be stored (it is simply never armed).

    Attributes:
        type: Schedule type ("once", "daily", "weekly", "custom").
        value: Timestamp for "once", "hh:mm" for "daily", expression for "custom".
        day: Day of week for "weekly" (0=Sunday .. 6=Saturday).
        time: "hh:mm" for "weekly".
    """

    type: str
    value: str | None = None
    day: str | None = None
    time: str | None = None

    @property
    def is_once(self) -> bool:
        return self.type == ScheduleType.ONCE

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "value": self.value,
            "day": self.day,
            "time": self.time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduleSpec":
        """Create from a request or database mapping.

        Numeric days (``1``) and string days (``"1"``) are both accepted.
        """
        day = data.get("day")
        return cls(
            type=str(data.get("type") or ""),
            value=data.get("value"),
            day=str(day) if day is not None and day != "" else None,
            time=data.get("time"),
        )


@dataclass(frozen=True)
class OnceSchedule:
    run_at: datetime


@dataclass(frozen=True)
class DailySchedule:
    hour: int
    minute: int


@dataclass(frozen=True)
class WeeklySchedule:
    day: int
    hour: int
    minute: int


@dataclass(frozen=True)
class CustomSchedule:
    expression: str


Schedule = OnceSchedule | DailySchedule | WeeklySchedule | CustomSchedule


@dataclass(frozen=True)
class TaskSnapshot:
    """Immutable copy of a task taken when its job is armed.

    Later edits to the stored task never reach an armed job; they go
    through cancel + schedule instead.
    """

    id: str
    name: str
    endpoint: str
    parameters: MappingProxyType
    schedule: ScheduleSpec


@dataclass
class TaskRecord:
    """Represents a stored task.

    Attributes:
        id: Unique task identifier (uuid4).
        name: Human label.
        endpoint: Downstream endpoint template, e.g. "/logs/{dir_name}".
        parameters: Endpoint parameters.
        schedule: Schedule descriptor.
        last_run: ISO timestamp of the last firing or NEVER_RUN.
        next_run: ISO timestamp or a display sentinel.
        status: Lifecycle status.
        created_at: When the task was created.
        updated_at: When the task was last modified.
    """

    id: str
    name: str
    endpoint: str
    parameters: dict[str, str]
    schedule: ScheduleSpec
    last_run: str = NEVER_RUN
    next_run: str = NEXT_RUN_UNSCHEDULED
    status: TaskStatus = TaskStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def snapshot(self) -> TaskSnapshot:
        return TaskSnapshot(
            id=self.id,
            name=self.name,
            endpoint=self.endpoint,
            parameters=MappingProxyType(dict(self.parameters)),
            schedule=self.schedule,
        )


@dataclass
class HistoryEntry:
    """One execution history record.

    ``task_id`` is a weak reference: entries outlive the task they
    belong to.
    """

    id: int
    task_id: str
    task_name: str
    execution_time: str
    status: ExecutionStatus
    output: str


@dataclass
class FiringResult:
    """Outcome of one firing, handed to the state recorder."""

    status: ExecutionStatus
    output: str
    warnings: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED
