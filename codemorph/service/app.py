"""FastAPI application entrypoint for codemorph service mode."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import ConfigError, load_config
from ..constants import TARGET_FRAMEWORKS, TARGET_LANGUAGES
from ..errors import MigrationError
from ..models import AgentRole, MessageType, MigrationPlan, ProjectFile
from ..oracle import OracleClient
from ..orchestrator import MigrationResult, StageOrchestrator
from ..packager import archive_name

DEFAULT_MAX_RUNS = 50


class FilePayload(BaseModel):
    path: str
    content: str


class MigrationRequest(BaseModel):
    repo_url: Optional[str] = None
    files: List[FilePayload] = []
    target_language: Optional[str] = None
    target_framework: Optional[str] = None


class FileView(BaseModel):
    path: str
    name: str
    language: str
    status: str
    translated_content: Optional[str] = None


class MessageView(BaseModel):
    id: str
    role: str
    text: str
    timestamp: int
    type: str


class PlanView(BaseModel):
    steps: List[str]
    mappings: Dict[str, str]
    dependencies: List[str]
    run_instructions: Optional[str] = None


class MigrationView(BaseModel):
    run_id: str
    source_language: str
    source_framework: str
    target_language: str
    target_framework: str
    is_processing: bool
    active_agent: Optional[str] = None
    progress: float
    current_index: Optional[int] = None
    files: List[FileView]
    messages: List[MessageView]
    plan: Optional[PlanView] = None
    reviews: Dict[str, str] = {}
    error: Optional[str] = None
    archive_name: str


class TargetsResponse(BaseModel):
    languages: List[str]
    frameworks: List[str]


class HealthResponse(BaseModel):
    status: str


@dataclass
class _Run:
    run_id: str
    orchestrator: StageOrchestrator
    result: Optional[MigrationResult] = None


def _is_finished(run: _Run) -> bool:
    return run.result is not None and not run.orchestrator.state.is_processing


def _default_orchestrator() -> StageOrchestrator:
    config = load_config()
    return StageOrchestrator(OracleClient(config.oracle), config=config)


def _plan_view(plan: Optional[MigrationPlan]) -> Optional[PlanView]:
    if plan is None:
        return None
    return PlanView(
        steps=list(plan.steps),
        mappings=dict(plan.mappings),
        dependencies=list(plan.dependencies),
        run_instructions=plan.run_instructions,
    )


def _view(run: _Run) -> MigrationView:
    orchestrator = run.orchestrator
    state = orchestrator.state
    error = run.result.error if run.result is not None else None
    return MigrationView(
        run_id=run.run_id,
        source_language=state.source_language,
        source_framework=state.source_framework,
        target_language=state.target_language,
        target_framework=state.target_framework,
        is_processing=state.is_processing,
        active_agent=state.active_agent.value if state.active_agent else None,
        progress=state.progress,
        current_index=state.current_index,
        files=[
            FileView(
                path=file.path,
                name=file.name,
                language=file.language,
                status=file.status.value,
                translated_content=file.translated_content,
            )
            for file in state.files
        ],
        messages=[
            MessageView(
                id=message.id,
                role=message.role.value,
                text=message.text,
                timestamp=message.timestamp,
                type=message.type.value,
            )
            for message in orchestrator.event_log.messages
        ],
        plan=_plan_view(orchestrator.migration_plan),
        reviews=dict(orchestrator.reviews),
        error=str(error) if error is not None else None,
        archive_name=archive_name(state.target_language),
    )


def create_app(
    orchestrator_factory: Callable[[], StageOrchestrator] = _default_orchestrator,
    *,
    max_runs: int = DEFAULT_MAX_RUNS,
) -> FastAPI:
    """Create the FastAPI application exposing migration runs.

    At most ``max_runs`` runs are retained; starting a new run past the cap
    drops the oldest finished runs first. Runs still queued or processing are
    never dropped, so the cap can be exceeded while they are in flight.
    """

    app = FastAPI(title="CodeMorph Service", version="1.0.0")
    runs: Dict[str, _Run] = {}
    runs_lock = threading.Lock()
    app.state.runs = runs

    def _get_run(run_id: str) -> _Run:
        with runs_lock:
            run = runs.get(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Unknown migration run: {run_id}")
        return run

    def _evict_finished() -> None:
        # Caller holds runs_lock.
        finished = [run_id for run_id, run in runs.items() if _is_finished(run)]
        for run_id in finished[: max(0, len(runs) - max_runs + 1)]:
            del runs[run_id]

    def _execute(run: _Run, repo_url: Optional[str]) -> None:
        run.result = run.orchestrator.run(repo_url=repo_url)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/targets", response_model=TargetsResponse)
    async def targets() -> TargetsResponse:
        return TargetsResponse(languages=list(TARGET_LANGUAGES), frameworks=list(TARGET_FRAMEWORKS))

    @app.post("/migrations", response_model=MigrationView, status_code=202)
    async def start_migration(
        payload: MigrationRequest, background_tasks: BackgroundTasks
    ) -> MigrationView:
        orchestrator = orchestrator_factory()
        state = orchestrator.state
        orchestrator.set_target(
            payload.target_language or state.target_language,
            payload.target_framework or state.target_framework,
        )
        if payload.files:
            orchestrator.load_files(
                [ProjectFile.create(item.path, item.content) for item in payload.files]
            )

        run = _Run(run_id=uuid.uuid4().hex, orchestrator=orchestrator)
        with runs_lock:
            _evict_finished()
            runs[run.run_id] = run
        background_tasks.add_task(_execute, run, payload.repo_url)
        return _view(run)

    @app.get("/migrations/{run_id}", response_model=MigrationView)
    async def get_migration(run_id: str) -> MigrationView:
        return _view(_get_run(run_id))

    @app.post("/migrations/{run_id}/cancel", response_model=MigrationView)
    async def cancel_migration(run_id: str) -> MigrationView:
        run = _get_run(run_id)
        run.orchestrator.cancel()
        return _view(run)

    @app.delete("/migrations/{run_id}", status_code=204)
    async def delete_migration(run_id: str) -> Response:
        run = _get_run(run_id)
        if not _is_finished(run):
            raise HTTPException(status_code=409, detail="Migration is still running")
        with runs_lock:
            runs.pop(run_id, None)
        return Response(status_code=204)

    @app.get("/migrations/{run_id}/archive")
    async def download_archive(run_id: str) -> Response:
        run = _get_run(run_id)
        if run.orchestrator.state.is_processing:
            raise HTTPException(status_code=409, detail="Migration is still running")
        data = run.orchestrator.package()
        if data is None:
            refusals = run.orchestrator.event_log.filter(
                role=AgentRole.REVIEWER, type=MessageType.WARNING
            )
            detail = refusals[-1].text if refusals else "No migrated files found to download."
            raise HTTPException(status_code=409, detail=detail)
        filename = archive_name(run.orchestrator.state.target_language)
        return Response(
            content=data,
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.exception_handler(MigrationError)
    async def migration_error_handler(_: object, exc: MigrationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: object, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


def run_service(host: str = "0.0.0.0", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)


__all__ = ["create_app", "run_service"]
