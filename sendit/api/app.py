"""FastAPI application exposing analysis and deployments over REST."""

import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..adapters.registry import AdapterRegistry, build_registry
from ..analyzer import AnalysisCache, FrameworkAnalyzer, GitHubClient, RateLimiter
from ..collaborators import AnalysisStore, EnvTokenStore, InMemoryAnalysisStore, TokenStore
from ..config import Settings
from ..errors import NotFound, RateLimitExceeded, SendItError, TransientNetworkError, ValidationError
from ..models import DeploymentConfig, DeploymentJob
from ..orchestrator import DeploymentOrchestrator, DeploymentQueue, EventChannel, JobHandle, NdjsonEventSink


# Pydantic models
class AnalyzeRequest(BaseModel):
    repo: str


class AnalyzeResponse(BaseModel):
    repo: str
    framework: str
    scores: Dict[str, int]
    recommended: str


class DeploymentRequest(BaseModel):
    repo: str
    platform: str
    env_vars: Dict[str, str] = Field(default_factory=dict)
    project_name: Optional[str] = None
    branch: Optional[str] = None
    framework: Optional[str] = None
    build_command: Optional[str] = None
    start_command: Optional[str] = None
    root_directory: Optional[str] = None
    environment: str = "production"
    options: Dict[str, str] = Field(default_factory=dict)
    repo_path: Optional[str] = None


class ErrorInfoModel(BaseModel):
    kind: str
    message: str


class JobResponse(BaseModel):
    id: str
    repo_url: str
    repo_path: Optional[str] = None
    platform: str
    status: str
    attempts: int
    deployment_id: Optional[str] = None
    url: Optional[str] = None
    last_error: Optional[ErrorInfoModel] = None
    created_at: str
    updated_at: str


class CancelResponse(BaseModel):
    canceled: bool
    job: JobResponse


def _job_response(job: DeploymentJob) -> JobResponse:
    data = job.to_dict()
    data.pop("config", None)
    return JobResponse(**data)


def _error(status_code: int, error: SendItError, hint: Optional[str] = None) -> HTTPException:
    detail: Dict[str, Any] = {"code": error.kind, "message": error.message}
    if hint:
        detail["hint"] = hint
    return HTTPException(status_code=status_code, detail=detail)


async def event_lines(channel: EventChannel, handle: JobHandle):
    """
    NDJSON lines for one job: its history so far, then live events until
    the terminal status.
    """
    subscription = channel.subscribe(handle.id)
    history = channel.history(handle.id)
    # decided before the first yield; later events land in the subscription
    live = not handle.job.is_terminal
    try:
        for event in history:
            yield json.dumps(event.to_dict()) + "\n"
        if live:
            async for event in subscription:
                yield json.dumps(event.to_dict()) + "\n"
    finally:
        subscription.close()


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[AdapterRegistry] = None,
    tokens: Optional[TokenStore] = None,
    analyzer: Optional[FrameworkAnalyzer] = None,
    store: Optional[AnalysisStore] = None,
    orchestrator: Optional[DeploymentOrchestrator] = None,
) -> FastAPI:
    """
    Build the API application.

    Every collaborator can be injected; anything omitted is built from the
    environment the same way the command line does it.
    """
    settings = settings or Settings.from_env()
    tokens = tokens or EnvTokenStore()
    store = store or InMemoryAnalysisStore()
    if analyzer is None:
        client = GitHubClient(
            RateLimiter(),
            api_url=settings.github_api_url,
            token=tokens.get("github"),
            timeout=settings.request_timeout,
        )
        analyzer = FrameworkAnalyzer(client, cache=AnalysisCache(ttl=settings.cache_ttl), store=store)
    if orchestrator is None:
        channel = EventChannel()
        channel.add_sink(NdjsonEventSink(settings.home))
        orchestrator = DeploymentOrchestrator(
            registry or build_registry(settings, tokens),
            settings=settings,
            channel=channel,
        )
    queue = DeploymentQueue(orchestrator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await orchestrator.shutdown()

    app = FastAPI(
        title="Send-It API",
        description="Repository analysis and multi-platform deployment",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.analyzer = analyzer
    app.state.store = store
    app.state.queue = queue
    app.state.orchestrator = orchestrator

    def _handle(job_id: str) -> JobHandle:
        handle = queue.get(job_id)
        if handle is None:
            raise HTTPException(
                status_code=404,
                detail={"code": "job_not_found", "message": f"Job {job_id} not found"},
            )
        return handle

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"message": "Send-It API is running", "version": __version__}

    @app.post("/analyze", response_model=AnalyzeResponse)
    async def analyze(request: AnalyzeRequest):
        """Classify a repository's framework and score each platform."""
        try:
            result = await analyzer.analyze(request.repo)
        except ValidationError as e:
            raise _error(422, e)
        except RateLimitExceeded as e:
            return JSONResponse(
                status_code=429,
                content={"detail": {"code": e.kind, "message": e.message, "retry_after": e.retry_after}},
                headers={"Retry-After": str(int(e.retry_after) + 1)},
            )
        except NotFound as e:
            raise _error(404, e)
        except TransientNetworkError as e:
            raise _error(502, e, hint="GitHub is unreachable, try again later")
        except SendItError as e:
            raise _error(502, e)

        return AnalyzeResponse(
            repo=request.repo,
            framework=result.framework,
            scores=result.scores,
            recommended=result.best_platform,
        )

    @app.get("/analyses")
    async def analyses() -> List[Dict[str, Any]]:
        """Analysis history, newest first."""
        return store.get_analyses()

    @app.post("/deployments", status_code=202, response_model=JobResponse)
    async def create_deployment(request: DeploymentRequest):
        """Admit a deployment job; 409 while the same repo/platform/environment is running."""
        try:
            config = DeploymentConfig(
                env_vars=request.env_vars,
                project_name=request.project_name,
                branch=request.branch,
                framework=request.framework,
                build_command=request.build_command,
                start_command=request.start_command,
                root_directory=request.root_directory,
                environment=request.environment,
                options=request.options,
            )
            job = DeploymentJob(
                repo_url=request.repo,
                platform=request.platform,
                config=config,
                repo_path=request.repo_path,
            )
            admission = queue.enqueue(job)
        except ValidationError as e:
            raise _error(422, e)

        if not admission.accepted:
            raise HTTPException(status_code=409, detail={"code": "conflict", "message": admission.reason})
        return _job_response(admission.handle.job)

    @app.get("/deployments", response_model=List[JobResponse])
    async def list_deployments():
        """Jobs that have not reached a terminal state."""
        return [_job_response(h.job) for h in queue.list_active()]

    @app.get("/deployments/{job_id}", response_model=JobResponse)
    async def get_deployment(job_id: str):
        return _job_response(_handle(job_id).job)

    @app.post("/deployments/{job_id}/cancel", response_model=CancelResponse)
    async def cancel_deployment(job_id: str):
        """Request cancellation; a no-op for terminal jobs."""
        handle = _handle(job_id)
        canceled = queue.cancel(job_id)
        return CancelResponse(canceled=canceled, job=_job_response(handle.job))

    @app.get("/deployments/{job_id}/events")
    async def stream_events(job_id: str):
        """Stream the job's events as NDJSON until it reaches a terminal state."""
        handle = _handle(job_id)
        return StreamingResponse(event_lines(orchestrator.channel, handle), media_type="application/x-ndjson")

    return app
