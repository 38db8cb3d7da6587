from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import FastAPI, File, HTTPException, Path, UploadFile

from submission_commit.api.handlers.deps import ApiDeps
from submission_commit.api.handlers.file_references import (
    discard_file_reference_handler,
    put_file_reference_handler,
)
from submission_commit.api.handlers.reconciliation import list_reconciliation_handler
from submission_commit.api.handlers.submissions import commit_submission_handler, get_submission_handler
from submission_commit.api.schemas import (
    DOCUMENT_ID_PATTERN,
    OWNER_ID_PATTERN,
    CommitErrorEnvelope,
    CreateSubmissionRequest,
    CreateSubmissionResponse,
    ErrorResponse,
    FileReferenceResponse,
    HealthResponse,
    ReadyResponse,
    ReconciliationListResponse,
    SubmissionResponse,
    WorkerMetrics,
)
from submission_commit.domain.errors import DomainValidationError
from submission_commit.workers.loop import ReconcileWorkerLoop
from submission_commit.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)


def build_app(
    role: str,
    run_id: str,
    worker_loop: ReconcileWorkerLoop | None = None,
    worker_runtime_settings: WorkerRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    logger = logging.getLogger("runtime")
    worker_state: WorkerRuntimeState | None = None
    worker_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal worker_task, worker_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if worker_loop is not None:
            settings = worker_runtime_settings or worker_runtime_settings_from_env()
            worker_state = WorkerRuntimeState()
            stop_event = asyncio.Event()
            worker_task = asyncio.create_task(
                run_worker_until_stopped(
                    worker_loop=worker_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=worker_state,
                )
            )

        yield

        if stop_event is not None and worker_task is not None:
            stop_event.set()
            await worker_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="submission-commit", version="0.1.0", lifespan=lifespan)

    def _require_deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role, mode=_mode())

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        worker_loop_enabled = worker_loop is not None
        worker_loop_ready = True
        metrics = WorkerMetrics(
            started=False,
            stopped=False,
            ticks_total=0,
            items_total=0,
            idle_ticks_total=0,
            errors_total=0,
        )
        if worker_loop_enabled:
            worker_loop_ready = (
                worker_state is not None
                and worker_state.started
                and worker_task is not None
                and not worker_task.done()
            )
            if worker_state is not None:
                metrics = WorkerMetrics(
                    started=worker_state.started,
                    stopped=worker_state.stopped,
                    ticks_total=worker_state.ticks_total,
                    items_total=worker_state.items_total,
                    idle_ticks_total=worker_state.idle_ticks_total,
                    errors_total=worker_state.errors_total,
                )

        return ReadyResponse(
            status="ready",
            role=role,
            mode=_mode(),
            worker_loop_enabled=worker_loop_enabled,
            worker_loop_ready=worker_loop_ready,
            worker_metrics=metrics,
        )

    def _mode() -> str:
        return "worker" if worker_loop is not None else "api"

    @app.put(
        "/file-references/{owner_id}/{document_id}",
        response_model=FileReferenceResponse,
        responses={503: {"model": ErrorResponse}},
        tags=["File references"],
    )
    async def put_file_reference(
        owner_id: str = Path(..., pattern=OWNER_ID_PATTERN),
        document_id: str = Path(..., pattern=DOCUMENT_ID_PATTERN),
        file: UploadFile = File(...),
    ) -> FileReferenceResponse:
        deps = _require_deps()
        payload = await file.read()
        return await put_file_reference_handler(
            owner_id=owner_id,
            document_id=document_id,
            payload=payload,
            api_deps=deps,
        )

    @app.delete(
        "/file-references/{owner_id}/{document_id}",
        status_code=204,
        responses={503: {"model": ErrorResponse}},
        tags=["File references"],
    )
    async def discard_file_reference(
        owner_id: str = Path(..., pattern=OWNER_ID_PATTERN),
        document_id: str = Path(..., pattern=DOCUMENT_ID_PATTERN),
    ) -> None:
        deps = _require_deps()
        await discard_file_reference_handler(owner_id=owner_id, document_id=document_id, api_deps=deps)

    @app.post(
        "/submissions",
        response_model=CreateSubmissionResponse,
        responses={
            400: {"model": ErrorResponse},
            409: {"model": CommitErrorEnvelope},
            422: {"model": CommitErrorEnvelope},
            502: {"model": CommitErrorEnvelope},
            503: {"model": CommitErrorEnvelope},
        },
        tags=["Submissions"],
    )
    async def commit_submission(request: CreateSubmissionRequest) -> CreateSubmissionResponse:
        deps = _require_deps()
        try:
            return await commit_submission_handler(request=request, api_deps=deps)
        except DomainValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get(
        "/submissions/{submission_id}",
        response_model=SubmissionResponse,
        responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        tags=["Submissions"],
    )
    async def get_submission(submission_id: str) -> SubmissionResponse:
        deps = _require_deps()
        submission = await get_submission_handler(submission_id=submission_id, api_deps=deps)
        if submission is None:
            raise HTTPException(status_code=404, detail="submission not found")
        return submission

    @app.get(
        "/reconciliation",
        response_model=ReconciliationListResponse,
        responses={503: {"model": ErrorResponse}},
        tags=["Reconciliation"],
    )
    async def list_reconciliation() -> ReconciliationListResponse:
        deps = _require_deps()
        return await list_reconciliation_handler(api_deps=deps)

    return app
