# tests/conftest.py
"""Shared pytest fixtures for all test modules.

Provides common fixtures for:
- Temporary database paths
- Task repository on a temporary database
- A started job registry with a mocked fire callback
- Rate limiter reset between tests
"""

import os
import tempfile
from collections.abc import AsyncGenerator, Callable, Generator
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from codehub_scheduler.core.scheduler.models import ScheduleSpec, TaskRecord
from codehub_scheduler.core.scheduler.registry import JobRegistry
from codehub_scheduler.core.scheduler.repository import TaskRepository
from codehub_scheduler.interfaces.api.security import limiter

UTC = ZoneInfo("UTC")


def make_task(
    schedule: ScheduleSpec,
    task_id: str = "task-1",
    name: str = "Nightly logs",
    endpoint: str = "/logs/{dir_name}",
    parameters: dict[str, str] | None = None,
) -> TaskRecord:
    """Build an in-memory task record for registry tests."""
    return TaskRecord(
        id=task_id,
        name=name,
        endpoint=endpoint,
        parameters=parameters if parameters is not None else {"dir_name": "build"},
        schedule=schedule,
    )


@pytest.fixture
def task_factory() -> Callable[..., TaskRecord]:
    """Factory for in-memory task records."""
    return make_task


@pytest.fixture
def temp_db() -> Generator[str, None, None]:
    """Create a temporary database file path.

    Yields:
        Path to temporary SQLite database file.
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup, including WAL side files
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            os.unlink(path)


@pytest.fixture
def temp_data_dir() -> Generator[str, None, None]:
    """Create a temporary data directory.

    Yields:
        Path to temporary directory.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def repository(temp_db: str) -> TaskRepository:
    return TaskRepository(temp_db)


@pytest.fixture
def fire_callback() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
async def registry(fire_callback: AsyncMock) -> AsyncGenerator[JobRegistry, None]:
    """Started job registry whose firings go to ``fire_callback``."""
    job_registry = JobRegistry(on_fire=fire_callback, tz=UTC)
    job_registry.start()

    yield job_registry

    job_registry.shutdown(wait=False)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> Generator[None, None, None]:
    """Clear rate limit counters so API tests never hit 429."""
    limiter.reset()
    yield
    limiter.reset()
