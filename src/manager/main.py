"""FastAPI application exposing the translation job protocol over HTTP."""

from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware

from common.config import settings
from common.logging_config import setup_service_logging
from common.schemas import JobEvent, TranslateJobRequest
from manager.schemas import (
    AbortResponse,
    HealthResponse,
    JobAcceptedResponse,
    RefineRequestBody,
    SessionListResponse,
    SessionStatusResponse,
    UsageResponse,
)
from translator.event_helpers import EventBus
from translator.file_job_store import FileJobStore
from translator.job_store import JobStore
from translator.redis_job_store import RedisJobStore
from translator.translation_orchestrator import TaskOrchestrator
from translator.translation_service import GPTChunkTranslator
from translator.usage_tracker import UsageTracker, estimate_cost, format_token_number

logger = setup_service_logging("manager", enable_file_logging=True)


async def create_job_store() -> JobStore:
    """Build the job store selected by settings."""
    if settings.job_store_backend == "redis":
        store = RedisJobStore()
        await store.connect()
        return store
    return FileJobStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the orchestrator on startup and tear it down on shutdown."""
    logger.info("Starting translation API...")

    job_store = await create_job_store()
    translator = GPTChunkTranslator()
    usage_tracker = UsageTracker()
    event_bus = EventBus()
    last_events: Dict[str, JobEvent] = {}

    def remember_event(event: JobEvent) -> None:
        last_events[event.session_key] = event

    event_bus.subscribe(remember_event)

    app.state.job_store = job_store
    app.state.translator = translator
    app.state.usage_tracker = usage_tracker
    app.state.event_bus = event_bus
    app.state.last_events = last_events
    app.state.orchestrator = TaskOrchestrator(
        job_store=job_store,
        translator=translator,
        usage_sink=usage_tracker,
        event_bus=event_bus,
    )
    logger.info(f"API startup complete (store: {settings.job_store_backend})")

    yield

    await app.state.orchestrator.shutdown()
    if isinstance(job_store, RedisJobStore):
        await job_store.disconnect()
    logger.info("Translation API stopped")


app = FastAPI(
    title="Resumable Translation API",
    description="API for running resumable chunked transcript translation jobs",
    version="1.0.0",
    lifespan=lifespan,
)

allowed_origins = (
    [origin.strip() for origin in settings.cors_allowed_origins.split(",")]
    if settings.cors_allowed_origins
    else ["http://localhost:3000"]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Resumable Translation API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Report service status and the number of running jobs."""
    orchestrator: TaskOrchestrator = request.app.state.orchestrator
    return HealthResponse(
        active_sessions=len(orchestrator.registry.active_sessions()),
        mock_translator=request.app.state.translator.is_mock,
    )


@app.post(
    "/translations",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_translation(body: TranslateJobRequest, request: Request):
    """Start or resume translating a transcript; preempts a running job."""
    orchestrator: TaskOrchestrator = request.app.state.orchestrator
    preempting = orchestrator.is_running(body.session_key)
    handle = orchestrator.start_translate(body)

    logger.info(
        f"Accepted translation for {handle.session_key} "
        f"({len(body.segments)} segments, task {handle.task_id})"
    )
    return JobAcceptedResponse(
        task_id=handle.task_id,
        session_key=handle.session_key,
        message="Preempted running job" if preempting else "Translation started",
    )


@app.post(
    "/translations/refine",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_refine(body: RefineRequestBody, request: Request):
    """Start re-segmenting a draft translation against the original timing."""
    orchestrator: TaskOrchestrator = request.app.state.orchestrator
    handle = orchestrator.start_refine(body.to_job_request())
    return JobAcceptedResponse(
        task_id=handle.task_id,
        session_key=handle.session_key,
        message="Refine started",
    )


@app.get("/translations", response_model=SessionListResponse)
async def list_translations(request: Request):
    """List known sessions, newest first."""
    sessions = await request.app.state.job_store.list_all()
    return SessionListResponse(sessions=sessions, total=len(sessions))


@app.get("/translations/{session_key}", response_model=SessionStatusResponse)
async def get_translation(session_key: str, request: Request):
    """Get the snapshot and running state of a session."""
    orchestrator: TaskOrchestrator = request.app.state.orchestrator
    last_event: Optional[JobEvent] = request.app.state.last_events.get(session_key)

    try:
        snapshot = await request.app.state.job_store.load(session_key)
    except ValueError as e:
        logger.error(f"Failed to load snapshot {session_key}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Corrupted snapshot: {session_key}",
        )

    is_running = orchestrator.is_running(session_key)
    if snapshot is None and not is_running and last_event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_key} not found",
        )

    return SessionStatusResponse(
        session_key=session_key,
        is_running=is_running,
        snapshot=snapshot,
        last_event=last_event,
    )


@app.post("/translations/{session_key}/abort", response_model=AbortResponse)
async def abort_translation(session_key: str, request: Request):
    """Abort the running job of a session."""
    aborted = request.app.state.orchestrator.abort_session(session_key)
    return AbortResponse(session_key=session_key, aborted=aborted)


@app.delete("/translations/{session_key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_translation(session_key: str, request: Request):
    """Abort any running job and delete the session's snapshot."""
    await request.app.state.orchestrator.abort_and_wait(session_key, "deleted")
    request.app.state.last_events.pop(session_key, None)
    deleted = await request.app.state.job_store.delete(session_key)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_key} not found",
        )


@app.get("/usage", response_model=UsageResponse)
async def get_usage(request: Request):
    """Report token usage for today and the retention window."""
    tracker: UsageTracker = request.app.state.usage_tracker
    today = tracker.today()
    monthly = tracker.monthly()
    return UsageResponse(
        today=today,
        monthly=monthly,
        today_cost_usd=estimate_cost(today),
        monthly_cost_usd=estimate_cost(monthly),
        today_display=format_token_number(today.input_tokens + today.output_tokens),
        monthly_display=format_token_number(
            monthly.input_tokens + monthly.output_tokens
        ),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
