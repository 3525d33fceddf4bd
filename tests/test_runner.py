# tests/test_runner.py
"""Tests for task firings end to end against a mock engine."""

from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import httpx
import pytest

from codehub_scheduler.core.scheduler.errors import PersistenceError
from codehub_scheduler.core.scheduler.executor import DownstreamExecutor
from codehub_scheduler.core.scheduler.models import (
    ExecutionStatus,
    ScheduleSpec,
)
from codehub_scheduler.core.scheduler.recorder import StateRecorder
from codehub_scheduler.core.scheduler.runner import TaskRunner
from codehub_scheduler.utils.logging import get_request_id

UTC = ZoneInfo("UTC")
DAILY = ScheduleSpec(type="daily", value="09:00")


def engine(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/stop_process":
        return httpx.Response(409, json={"detail": "no process running"})
    return httpx.Response(200, json={"path": request.url.path})


@pytest.fixture
def runner(repository) -> TaskRunner:
    executor = DownstreamExecutor(
        "http://engine", transport=httpx.MockTransport(engine)
    )
    return TaskRunner(executor, StateRecorder(repository, UTC))


def create_task(repository, endpoint: str, parameters: dict[str, str]):
    return repository.create(
        name="Engine call",
        endpoint=endpoint,
        parameters=parameters,
        schedule=DAILY,
        next_run="N/A",
    )


class TestTaskRunner:
    """Tests for TaskRunner.fire."""

    @pytest.mark.asyncio
    async def test_success_records_payload(self, repository, runner):
        task = create_task(repository, "/logs/{dir_name}", {"dir_name": "build"})

        entry = await runner.fire(task.snapshot())

        assert entry.status == ExecutionStatus.COMPLETED
        assert '"path": "/logs/build"' in entry.output
        assert repository.get(task.id).last_run == entry.execution_time

    @pytest.mark.asyncio
    async def test_downstream_error_records_failure(self, repository, runner):
        task = create_task(repository, "/stop_process", {})

        entry = await runner.fire(task.snapshot())

        assert entry.status == ExecutionStatus.FAILED
        assert entry.output.startswith("Error executing task 'Engine call':")
        assert "Response Data:" in entry.output
        assert "no process running" in entry.output

    @pytest.mark.asyncio
    async def test_missing_path_parameter_is_a_warning(self, repository, runner):
        task = create_task(repository, "/logs/{dir_name}", {})

        entry = await runner.fire(task.snapshot())

        assert entry.status == ExecutionStatus.COMPLETED
        assert entry.output.startswith("Warning: Missing path parameter 'dir_name'")
        assert '"path": "/logs/default"' in entry.output

    @pytest.mark.asyncio
    async def test_sets_task_correlation_id(self, repository, runner):
        task = create_task(repository, "/containers", {})

        await runner.fire(task.snapshot())

        assert get_request_id() == f"task:{task.id}"

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_entry(self, repository):
        executor = MagicMock()
        executor.base_url = "http://engine"
        executor.execute = AsyncMock(side_effect=RuntimeError("socket exploded"))
        runner = TaskRunner(executor, StateRecorder(repository, UTC))
        task = create_task(repository, "/containers", {})

        entry = await runner.fire(task.snapshot())

        assert entry.status == ExecutionStatus.FAILED
        assert "socket exploded" in entry.output


class TestRecorderFailures:
    """Recording failures never escape scheduled firings."""

    @pytest.mark.asyncio
    async def test_scheduled_firing_swallows_record_error(self, repository):
        recorder = MagicMock()
        recorder.record = AsyncMock(side_effect=PersistenceError("disk full"))
        executor = DownstreamExecutor(
            "http://engine", transport=httpx.MockTransport(engine)
        )
        task = create_task(repository, "/containers", {})

        result = await TaskRunner(executor, recorder).fire(task.snapshot())

        assert result is None

    @pytest.mark.asyncio
    async def test_manual_firing_propagates_record_error(self, repository):
        recorder = MagicMock()
        recorder.record = AsyncMock(side_effect=PersistenceError("disk full"))
        executor = DownstreamExecutor(
            "http://engine", transport=httpx.MockTransport(engine)
        )
        task = create_task(repository, "/containers", {})

        with pytest.raises(PersistenceError):
            await TaskRunner(executor, recorder).fire(task.snapshot(), manual=True)
