# codehub_scheduler/core/scheduler/__init__.py
"""Scheduler module for downstream engine tasks.

Provides task scheduling capabilities:
- Schedule descriptor to cron trigger translation
- APScheduler job registry with one armed job per task
- Downstream execution and state recording per firing
- Recovery of persisted schedules on startup
"""

from codehub_scheduler.core.scheduler.bootstrap import RecoveryReport, recover_tasks
from codehub_scheduler.core.scheduler.errors import (
    DownstreamCallError,
    NotFoundError,
    PersistenceError,
    ScheduleTranslationError,
    SchedulerError,
    ValidationError,
)
from codehub_scheduler.core.scheduler.executor import DownstreamExecutor
from codehub_scheduler.core.scheduler.models import (
    ExecutionStatus,
    HistoryEntry,
    ScheduleSpec,
    TaskRecord,
    TaskSnapshot,
    TaskStatus,
)
from codehub_scheduler.core.scheduler.recorder import StateRecorder
from codehub_scheduler.core.scheduler.registry import ArmedJob, JobRegistry
from codehub_scheduler.core.scheduler.repository import TaskRepository
from codehub_scheduler.core.scheduler.runner import TaskRunner
from codehub_scheduler.core.scheduler.service import TaskService
from codehub_scheduler.core.scheduler.translator import next_occurrence, translate

__all__ = [
    "ArmedJob",
    "DownstreamCallError",
    "DownstreamExecutor",
    "ExecutionStatus",
    "HistoryEntry",
    "JobRegistry",
    "NotFoundError",
    "PersistenceError",
    "RecoveryReport",
    "ScheduleSpec",
    "ScheduleTranslationError",
    "SchedulerError",
    "StateRecorder",
    "TaskRecord",
    "TaskRepository",
    "TaskRunner",
    "TaskService",
    "TaskSnapshot",
    "TaskStatus",
    "ValidationError",
    "next_occurrence",
    "recover_tasks",
    "translate",
]
