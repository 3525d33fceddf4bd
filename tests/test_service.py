# tests/test_service.py
"""Tests for task management operations."""

import asyncio
from collections.abc import AsyncGenerator
from zoneinfo import ZoneInfo

import httpx
import pytest

from codehub_scheduler.core.scheduler.errors import NotFoundError, ValidationError
from codehub_scheduler.core.scheduler.executor import DownstreamExecutor
from codehub_scheduler.core.scheduler.models import (
    NEXT_RUN_UNSCHEDULED,
    ExecutionStatus,
    TaskStatus,
)
from codehub_scheduler.core.scheduler.recorder import StateRecorder
from codehub_scheduler.core.scheduler.registry import JobRegistry
from codehub_scheduler.core.scheduler.runner import TaskRunner
from codehub_scheduler.core.scheduler.service import TaskService

UTC = ZoneInfo("UTC")
DAILY = {"type": "daily", "value": "09:00"}


@pytest.fixture
def engine_calls() -> list[httpx.Request]:
    return []


@pytest.fixture
def runner(repository, engine_calls) -> TaskRunner:
    def handler(request: httpx.Request) -> httpx.Response:
        engine_calls.append(request)
        return httpx.Response(200, json={"status": "ok"})

    executor = DownstreamExecutor(
        "http://engine", transport=httpx.MockTransport(handler)
    )
    return TaskRunner(executor, StateRecorder(repository, UTC))


@pytest.fixture
async def live_registry(runner) -> AsyncGenerator[JobRegistry, None]:
    job_registry = JobRegistry(runner.fire, UTC)
    job_registry.start()

    yield job_registry

    job_registry.shutdown(wait=False)


@pytest.fixture
def service(repository, live_registry, runner) -> TaskService:
    return TaskService(repository, live_registry, runner, UTC)


async def tick(registry: JobRegistry, task_id: str) -> None:
    """Simulate the trigger firing once."""
    job = registry.get(task_id).job
    await job.func(*job.args)


class TestCreateTask:
    """Tests for TaskService.create_task."""

    @pytest.mark.asyncio
    async def test_create_arms_job(self, service, live_registry):
        task = service.create_task(
            "Logs", "/logs/{dir_name}", {"dir_name": "build"}, DAILY
        )

        assert task.status == TaskStatus.ACTIVE
        assert task.next_run.endswith("09:00:00+00:00")
        assert task.id in live_registry

    @pytest.mark.asyncio
    async def test_parameters_are_stringified(self, service):
        task = service.create_task("Logs", "/containers", {"limit": 5}, DAILY)

        assert task.parameters == {"limit": "5"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "endpoint", "schedule"),
        [
            (None, "/containers", DAILY),
            ("  ", "/containers", DAILY),
            ("Logs", None, DAILY),
            ("Logs", "/containers", None),
            ("Logs", "/containers", {"value": "09:00"}),
        ],
    )
    async def test_missing_fields_rejected(
        self, service, repository, name, endpoint, schedule
    ):
        with pytest.raises(ValidationError):
            service.create_task(name, endpoint, {}, schedule)

        assert repository.list_all() == []

    @pytest.mark.asyncio
    async def test_untranslatable_schedule_is_stored_unscheduled(
        self, service, live_registry
    ):
        task = service.create_task(
            "Bad", "/containers", {}, {"type": "custom", "value": "whenever"}
        )

        assert task.next_run == NEXT_RUN_UNSCHEDULED
        assert task.id not in live_registry


class TestUpdateTask:
    """Tests for TaskService.update_task."""

    @pytest.mark.asyncio
    async def test_new_schedule_fires_once_per_tick(
        self, service, live_registry, repository, engine_calls
    ):
        task = service.create_task("Logs", "/containers", {}, DAILY)

        service.update_task(task.id, {"schedule": {"type": "daily", "value": "10:00"}})

        assert live_registry.get(task.id).cron.expression == "0 10 * * *"
        assert len(live_registry._scheduler.get_jobs()) == 1

        await tick(live_registry, task.id)
        await tick(live_registry, task.id)

        assert len(engine_calls) == 2
        assert len(repository.list_history(task.id)) == 2

    @pytest.mark.asyncio
    async def test_armed_job_uses_updated_fields(self, service, live_registry):
        task = service.create_task("Logs", "/containers", {}, DAILY)

        service.update_task(task.id, {"name": "Containers", "parameters": {"a": 1}})

        snapshot = live_registry.get(task.id).snapshot
        assert snapshot.name == "Containers"
        assert dict(snapshot.parameters) == {"a": "1"}

    @pytest.mark.asyncio
    async def test_unknown_task(self, service):
        with pytest.raises(NotFoundError):
            service.update_task("missing", {"name": "x"})

    @pytest.mark.asyncio
    async def test_empty_name_rejected(self, service):
        task = service.create_task("Logs", "/containers", {}, DAILY)

        with pytest.raises(ValidationError):
            service.update_task(task.id, {"name": ""})

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, service, live_registry):
        task = service.create_task("Logs", "/containers", {}, DAILY)

        paused = service.update_task(task.id, {"status": "Paused"})

        assert paused.status == TaskStatus.PAUSED
        assert task.id not in live_registry

        resumed = service.update_task(task.id, {"status": "Active"})

        assert resumed.status == TaskStatus.ACTIVE
        assert task.id in live_registry

    @pytest.mark.asyncio
    async def test_schedule_change_keeps_pause(self, service, live_registry):
        task = service.create_task("Logs", "/containers", {}, DAILY)
        service.update_task(task.id, {"status": "Paused"})

        updated = service.update_task(
            task.id, {"schedule": {"type": "daily", "value": "11:00"}}
        )

        assert updated.status == TaskStatus.PAUSED
        assert task.id not in live_registry

    @pytest.mark.asyncio
    async def test_schedule_change_reactivates_completed_task(
        self, service, live_registry, repository
    ):
        task = service.create_task("Logs", "/containers", {}, DAILY)
        repository.update(task.id, status=TaskStatus.COMPLETED)
        live_registry.cancel(task.id)

        updated = service.update_task(
            task.id, {"schedule": {"type": "weekly", "day": 2, "time": "08:00"}}
        )

        assert updated.status == TaskStatus.ACTIVE
        assert live_registry.get(task.id).cron.expression == "0 8 * * 2"

    @pytest.mark.asyncio
    async def test_in_flight_once_firing_does_not_complete_rescheduled_task(
        self, repository
    ):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_engine(request: httpx.Request) -> httpx.Response:
            started.set()
            await release.wait()
            return httpx.Response(200, json={"status": "ok"})

        executor = DownstreamExecutor(
            "http://engine", transport=httpx.MockTransport(slow_engine)
        )
        runner = TaskRunner(executor, StateRecorder(repository, UTC))
        job_registry = JobRegistry(runner.fire, UTC)
        job_registry.start()
        service = TaskService(repository, job_registry, runner, UTC)
        try:
            task = service.create_task(
                "Once", "/containers", {}, {"type": "once", "value": "2099-01-01T00:00"}
            )
            firing = asyncio.create_task(tick(job_registry, task.id))
            await asyncio.wait_for(started.wait(), timeout=5)

            service.update_task(task.id, {"schedule": DAILY})
            release.set()
            await firing

            assert job_registry.get(task.id).cron.expression == "0 9 * * *"
        finally:
            release.set()
            job_registry.shutdown(wait=False)

        stored = repository.get(task.id)
        assert stored.status == TaskStatus.ACTIVE
        assert stored.next_run.endswith("09:00:00+00:00")
        assert len(repository.list_history(task.id)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["Completed", "Failed", "Sleeping"])
    async def test_status_must_be_settable(self, service, status):
        task = service.create_task("Logs", "/containers", {}, DAILY)

        with pytest.raises(ValidationError):
            service.update_task(task.id, {"status": status})


class TestDeleteTask:
    """Tests for TaskService.delete_task."""

    @pytest.mark.asyncio
    async def test_delete_cancels_and_keeps_history(
        self, service, live_registry, repository
    ):
        task = service.create_task("Logs", "/containers", {}, DAILY)
        await service.run_now(task.id)

        service.delete_task(task.id)

        assert task.id not in live_registry
        assert live_registry._scheduler.get_jobs() == []
        with pytest.raises(NotFoundError):
            service.get_task(task.id)
        assert len(service.list_history(task.id)) == 1

    @pytest.mark.asyncio
    async def test_delete_unknown(self, service):
        with pytest.raises(NotFoundError):
            service.delete_task("missing")


class TestRunNow:
    """Tests for TaskService.run_now."""

    @pytest.mark.asyncio
    async def test_run_now_records_entry_and_keeps_job(
        self, service, live_registry, repository
    ):
        task = service.create_task("Logs", "/containers", {}, DAILY)
        armed = live_registry.get(task.id)

        entry = await service.run_now(task.id)

        assert entry.status == ExecutionStatus.COMPLETED
        assert entry.task_name == "Logs"
        assert live_registry.get(task.id) is armed
        stored = repository.get(task.id)
        assert stored.last_run == entry.execution_time
        assert stored.status == TaskStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_run_now_does_not_complete_once_task(self, service):
        task = service.create_task(
            "Once", "/containers", {}, {"type": "once", "value": "2099-01-01T00:00"}
        )

        await service.run_now(task.id)

        assert service.get_task(task.id).status == TaskStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_run_now_unknown_changes_nothing(self, service, repository):
        task = service.create_task("Logs", "/containers", {}, DAILY)
        before = repository.get(task.id)

        with pytest.raises(NotFoundError):
            await service.run_now("missing")

        assert repository.list_history() == []
        assert repository.get(task.id) == before

    @pytest.mark.asyncio
    async def test_concurrent_run_now_records_each(self, service, engine_calls):
        task = service.create_task("Logs", "/containers", {}, DAILY)

        first, second = await asyncio.gather(
            service.run_now(task.id), service.run_now(task.id)
        )

        assert first.id != second.id
        assert len(engine_calls) == 2
        assert len(service.list_history(task.id)) == 2


class TestListing:
    @pytest.mark.asyncio
    async def test_list_tasks_refreshes_next_run(self, service, repository):
        task = service.create_task("Logs", "/containers", {}, DAILY)
        repository.update(task.id, next_run="stale")

        listed = service.list_tasks()

        assert listed[0].next_run.endswith("09:00:00+00:00")

    @pytest.mark.asyncio
    async def test_list_jobs(self, service):
        task = service.create_task("Logs", "/containers", {}, DAILY)
        service.create_task("Bad", "/containers", {}, {"type": "custom", "value": "?"})

        assert [armed.snapshot.id for armed in service.list_jobs()] == [task.id]
