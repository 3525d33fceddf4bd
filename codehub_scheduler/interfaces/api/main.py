# codehub_scheduler/interfaces/api/main.py
"""FastAPI application for the Codehub task scheduler.

Provides the admin REST API for creating, updating, deleting, listing
and manually running scheduled tasks, plus execution history.
"""

import argparse
import logging
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Annotated, Any

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Load environment variables from .env file
load_dotenv()

from codehub_scheduler import __version__  # noqa: E402
from codehub_scheduler.config import Settings, settings  # noqa: E402
from codehub_scheduler.core.lifecycle import LifecycleManager  # noqa: E402
from codehub_scheduler.core.scheduler import (  # noqa: E402
    DownstreamExecutor,
    JobRegistry,
    NotFoundError,
    PersistenceError,
    StateRecorder,
    TaskRepository,
    TaskRunner,
    TaskService,
    ValidationError,
    recover_tasks,
)
from codehub_scheduler.interfaces.api.schemas import (  # noqa: E402
    HistoryEntryResponse,
    JobResponse,
    MessageResponse,
    RunNowResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from codehub_scheduler.interfaces.api.security import (  # noqa: E402
    get_rate_limit_string,
    limiter,
)
from codehub_scheduler.utils.logging import (  # noqa: E402
    configure_logging,
    set_request_id,
)
from codehub_scheduler.utils.observability import setup_logfire  # noqa: E402

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def get_task_service(request: Request) -> TaskService:
    """Get the task service owned by the running application."""
    return request.app.state.task_service


Service = Annotated[TaskService, Depends(get_task_service)]

router = APIRouter()


@router.get("/tasks", response_model=list[TaskResponse])
@limiter.limit(get_rate_limit_string)
async def list_tasks(request: Request, service: Service) -> list[TaskResponse]:
    """List all tasks with freshly computed next runs."""
    return [TaskResponse.from_record(task) for task in service.list_tasks()]


@router.post("/tasks", response_model=TaskResponse, status_code=201)
@limiter.limit(get_rate_limit_string)
async def create_task(
    request: Request, task_create: TaskCreate, service: Service
) -> TaskResponse:
    """Create a task and arm its schedule.

    Raises:
        ValidationError: If name, endpoint or schedule.type is missing (400).
    """
    schedule = (
        task_create.schedule.model_dump() if task_create.schedule is not None else None
    )
    task = service.create_task(
        name=task_create.name,
        endpoint=task_create.endpoint,
        parameters=task_create.parameters,
        schedule=schedule,
    )
    return TaskResponse.from_record(task)


@router.get("/tasks/{task_id}", response_model=TaskResponse)
@limiter.limit(get_rate_limit_string)
async def get_task(request: Request, task_id: str, service: Service) -> TaskResponse:
    """Get a single task.

    Raises:
        NotFoundError: If the task does not exist (404).
    """
    return TaskResponse.from_record(service.get_task(task_id))


@router.put("/tasks/{task_id}", response_model=TaskResponse)
@limiter.limit(get_rate_limit_string)
async def update_task(
    request: Request, task_id: str, task_update: TaskUpdate, service: Service
) -> TaskResponse:
    """Update a task and re-arm its schedule.

    Only fields present in the body are changed. Setting status to
    Paused cancels the job; setting it back to Active re-arms it.
    """
    changes: dict[str, Any] = task_update.model_dump(exclude_unset=True)
    task = service.update_task(task_id, changes)
    return TaskResponse.from_record(task)


@router.delete("/tasks/{task_id}", response_model=MessageResponse)
@limiter.limit(get_rate_limit_string)
async def delete_task(
    request: Request, task_id: str, service: Service
) -> MessageResponse:
    """Delete a task. Its execution history is kept."""
    service.delete_task(task_id)
    return MessageResponse(message="Task deleted")


@router.post("/tasks/{task_id}/run_now", response_model=RunNowResponse)
@limiter.limit(get_rate_limit_string)
async def run_task_now(
    request: Request, task_id: str, service: Service
) -> RunNowResponse:
    """Fire a task immediately and return the recorded execution.

    A failed downstream call is still a 200 response; the failure is
    reported in the execution entry.
    """
    entry = await service.run_now(task_id)
    return RunNowResponse(
        message="Task executed",
        execution=HistoryEntryResponse.from_entry(entry),
    )


@router.get("/tasks/{task_id}/history", response_model=list[HistoryEntryResponse])
@limiter.limit(get_rate_limit_string)
async def get_task_history(
    request: Request, task_id: str, service: Service
) -> list[HistoryEntryResponse]:
    """Execution history of one task, newest first."""
    return [
        HistoryEntryResponse.from_entry(entry)
        for entry in service.list_history(task_id)
    ]


@router.get("/history", response_model=list[HistoryEntryResponse])
@limiter.limit(get_rate_limit_string)
async def get_history(
    request: Request, service: Service
) -> list[HistoryEntryResponse]:
    """Execution history of all tasks, newest first."""
    return [HistoryEntryResponse.from_entry(entry) for entry in service.list_history()]


@router.get("/jobs", response_model=list[JobResponse])
@limiter.limit(get_rate_limit_string)
async def list_jobs(request: Request, service: Service) -> list[JobResponse]:
    """Live registry entries, soonest first."""
    return [JobResponse.from_armed(armed) for armed in service.list_jobs()]


async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _validation_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _persistence_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app(
    app_settings: Settings | None = None,
    *,
    downstream_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        app_settings: Settings to use. Defaults to the environment settings.
        downstream_transport: Optional httpx transport for downstream calls.

    Returns:
        Configured FastAPI application.
    """
    cfg = app_settings or settings
    tz = cfg.timezone

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        repository = TaskRepository(cfg.database_path)
        executor = DownstreamExecutor(
            cfg.codehub_api_base_url,
            timeout=cfg.downstream_timeout,
            transport=downstream_transport,
        )
        runner = TaskRunner(executor, StateRecorder(repository, tz))
        registry = JobRegistry(
            runner.fire, tz, misfire_grace_time=cfg.misfire_grace_time
        )

        app.state.repository = repository
        app.state.registry = registry
        app.state.task_service = TaskService(repository, registry, runner, tz)

        lifecycle = LifecycleManager()
        lifecycle.register("registry", registry)
        await lifecycle.startup()

        try:
            recover_tasks(repository, registry, tz)
            logger.info(
                "Scheduler ready: downstream=%s, timezone=%s",
                cfg.codehub_api_base_url,
                cfg.scheduler_timezone,
            )

            yield
        finally:
            logger.info("Shutting down...")
            await lifecycle.shutdown()

    app = FastAPI(
        title="Codehub Scheduler API",
        description="REST API for scheduling Codehub endpoint calls",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(ValidationError, _validation_handler)
    app.add_exception_handler(PersistenceError, _persistence_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlate_request(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        set_request_id(request_id)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Liveness probe with registry state."""
        registry: JobRegistry | None = getattr(request.app.state, "registry", None)
        return {
            "status": "ok",
            "scheduler_running": registry is not None and registry.is_running,
            "jobs": len(registry) if registry is not None else 0,
        }

    app.include_router(router, prefix=cfg.api_prefix)
    setup_logfire(app)
    return app


app = create_app()


def main() -> None:
    """Run the scheduler API with uvicorn."""
    parser = argparse.ArgumentParser(description="Codehub task scheduler")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8001, help="Bind port")
    args = parser.parse_args()

    configure_logging(settings.log_level, settings.log_json)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
