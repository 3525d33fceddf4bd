# codehub_scheduler/interfaces/api/schemas.py
"""Pydantic models for FastAPI request/response validation.

Defines request and response schemas for the scheduler admin API.
Responses use camelCase field names for the dashboard front end.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from codehub_scheduler.core.scheduler.models import (
    HistoryEntry,
    ScheduleSpec,
    TaskRecord,
)
from codehub_scheduler.core.scheduler.registry import ArmedJob


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScheduleModel(BaseModel):
    """Schedule descriptor.

    Attributes:
        type: once, daily, weekly or custom.
        value: Timestamp (once), "hh:mm" (daily) or cron expression (custom).
        day: Day of week for weekly schedules (0=Sunday).
        time: "hh:mm" for weekly schedules.
    """

    type: str | None = Field(None, description="once, daily, weekly or custom")
    value: str | None = Field(None, description="Timestamp, hh:mm or cron expression")
    day: str | int | None = Field(None, description="Day of week (0=Sunday)")
    time: str | None = Field(None, description="hh:mm for weekly schedules")

    @classmethod
    def from_spec(cls, spec: ScheduleSpec) -> "ScheduleModel":
        return cls(**spec.to_dict())


class TaskCreate(BaseModel):
    """Request body for POST /tasks.

    Fields are optional here so that missing ones are reported as 400
    by the service layer.
    """

    name: str | None = Field(None, description="Task name")
    endpoint: str | None = Field(
        None, description="Downstream endpoint, e.g. /logs/{dir_name}"
    )
    parameters: dict[str, Any] | None = Field(
        None, description="Endpoint parameters"
    )
    schedule: ScheduleModel | None = Field(None, description="Schedule descriptor")


class TaskUpdate(BaseModel):
    """Request body for PUT /tasks/{id}; every field is optional."""

    name: str | None = Field(None, description="New task name")
    endpoint: str | None = Field(None, description="New downstream endpoint")
    parameters: dict[str, Any] | None = Field(None, description="New parameters")
    schedule: ScheduleModel | None = Field(None, description="New schedule")
    status: str | None = Field(None, description="Active or Paused")


class TaskResponse(CamelModel):
    """A stored task."""

    id: str = Field(..., description="Unique task identifier")
    name: str = Field(..., description="Task name")
    endpoint: str = Field(..., description="Downstream endpoint")
    parameters: dict[str, str] = Field(default_factory=dict)
    schedule: ScheduleModel = Field(..., description="Schedule descriptor")
    last_run: str = Field(..., description="ISO timestamp or N/A")
    next_run: str = Field(..., description="ISO timestamp or display sentinel")
    status: str = Field(..., description="Active, Completed, Failed or Paused")
    created_at: str | None = Field(None, description="Creation timestamp")
    updated_at: str | None = Field(None, description="Last update timestamp")

    @classmethod
    def from_record(cls, task: TaskRecord) -> "TaskResponse":
        return cls(
            id=task.id,
            name=task.name,
            endpoint=task.endpoint,
            parameters=task.parameters,
            schedule=ScheduleModel.from_spec(task.schedule),
            last_run=task.last_run,
            next_run=task.next_run,
            status=task.status.value,
            created_at=task.created_at.isoformat() if task.created_at else None,
            updated_at=task.updated_at.isoformat() if task.updated_at else None,
        )


class HistoryEntryResponse(CamelModel):
    """One execution history entry."""

    id: int = Field(..., description="Monotonic entry id")
    task_id: str = Field(..., description="Task identifier (may be deleted)")
    task_name: str = Field(..., description="Task name at firing time")
    execution_time: str = Field(..., description="ISO timestamp of the firing")
    status: str = Field(..., description="Completed or Failed")
    output: str = Field(..., description="Response payload or error detail")

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            task_id=entry.task_id,
            task_name=entry.task_name,
            execution_time=entry.execution_time,
            status=entry.status.value,
            output=entry.output,
        )


class RunNowResponse(CamelModel):
    """Response body for POST /tasks/{id}/run_now."""

    message: str
    execution: HistoryEntryResponse


class JobResponse(CamelModel):
    """A live registry entry."""

    task_id: str = Field(..., description="Task identifier")
    task_name: str = Field(..., description="Task name when armed")
    cron: str = Field(..., description="Crontab expression")
    next_run_time: str | None = Field(None, description="Next fire time")

    @classmethod
    def from_armed(cls, armed: ArmedJob) -> "JobResponse":
        next_run_time = armed.next_run_time
        return cls(
            task_id=armed.snapshot.id,
            task_name=armed.snapshot.name,
            cron=armed.cron.expression,
            next_run_time=next_run_time.isoformat() if next_run_time else None,
        )


class MessageResponse(BaseModel):
    message: str
