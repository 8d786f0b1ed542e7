"""
rlmkit - FastAPI Backend

API Endpoints:
- POST   /run                   - Answer a question about an input
- GET    /recall                - List cached snippets
- DELETE /recall                - Clear the recall cache
- GET    /trajectories          - List trajectory files
- POST   /trajectories/cleanup  - Delete old trajectory files
- GET    /health                - Health check
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import RunOptions, settings
from .llm import LLMError, MissingCredentialError, OllamaClient, UnsupportedProviderError, available_providers
from .recall import RecallStore, RecallStoreError
from .rlm import Answer, RLMEngine, TrajectoryLogger

logger = logging.getLogger(__name__)


# Global instances
rlm_engine: Optional[RLMEngine] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    global rlm_engine

    rlm_engine = RLMEngine()

    logger.info("rlmkit API ready (providers: %s)", available_providers(RunOptions.from_settings()))

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="rlmkit",
    description="Recursive code-generation engine",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response Models
class RunRequest(BaseModel):
    question: str
    input: str
    provider: Optional[str] = None
    model: Optional[str] = None
    max_iterations: Optional[int] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    recall: Optional[bool] = None
    retry_with_backoff: Optional[bool] = None


class RunResponse(BaseModel):
    answered: bool
    answer: Optional[str] = None
    iterations: int
    trajectory: Optional[str] = None
    partial: Optional[dict] = None


class RecallEntryInfo(BaseModel):
    id: int
    question: str
    snippet: str
    inserted_at: float


class HealthResponse(BaseModel):
    status: str
    providers: List[str]
    ollama_connected: bool
    recall_entries: int


def _recall_store() -> RecallStore:
    return RecallStore(db_path=settings.recall.db_path)


def _stringify(value: Any) -> str:
    return value if isinstance(value, str) else repr(value)


# Endpoints
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Check system health."""
    options = RunOptions.from_settings()
    providers = available_providers(options)
    ollama_ok = await OllamaClient(base_url=settings.ollama.base_url).check_health()

    try:
        entries = len(_recall_store().list())
    except RecallStoreError:
        entries = 0

    return HealthResponse(
        status="healthy" if providers or ollama_ok else "degraded",
        providers=providers,
        ollama_connected=ollama_ok,
        recall_entries=entries,
    )


@app.post("/run", response_model=RunResponse)
async def run(request: RunRequest):
    """Run the engine on one question."""
    if not rlm_engine:
        raise HTTPException(503, "Not ready")

    options = RunOptions.from_settings(
        provider=request.provider,
        model=request.model,
        max_iterations=request.max_iterations,
        temperature=request.temperature,
        max_tokens=request.max_tokens,
        recall=request.recall,
        retry_with_backoff=request.retry_with_backoff,
        return_meta=True,
    )

    try:
        result = await rlm_engine.run(request.question, request.input, options)
    except (MissingCredentialError, UnsupportedProviderError) as e:
        raise HTTPException(400, str(e))
    except LLMError as e:
        raise HTTPException(502, str(e))

    if isinstance(result, Answer):
        return RunResponse(
            answered=True,
            answer=_stringify(result.value),
            iterations=result.iterations,
            trajectory=result.trajectory,
        )

    partial = None
    if result.partial is not None:
        partial = {
            "result": _stringify(result.partial.result),
            "stdout": result.partial.stdout,
            "code": result.partial.code,
        }
    return RunResponse(
        answered=False,
        iterations=result.iterations,
        trajectory=result.trajectory,
        partial=partial,
    )


@app.get("/recall", response_model=List[RecallEntryInfo])
async def list_recall():
    """List cached snippets, newest first."""
    try:
        entries = _recall_store().list()
    except RecallStoreError as e:
        raise HTTPException(500, str(e))

    return [
        RecallEntryInfo(
            id=e.id,
            question=e.question,
            snippet=e.snippet,
            inserted_at=e.inserted_at,
        )
        for e in entries
    ]


@app.delete("/recall")
async def clear_recall():
    """Delete every cached snippet."""
    try:
        deleted = _recall_store().clear()
    except RecallStoreError as e:
        raise HTTPException(500, str(e))

    return {"status": "cleared", "deleted": deleted}


@app.get("/trajectories")
async def list_trajectories():
    """List trajectory files."""
    return TrajectoryLogger(log_dir=settings.trajectory.log_dir).list_sessions()


@app.post("/trajectories/cleanup")
async def cleanup_trajectories(max_age_days: Optional[int] = None):
    """Delete trajectory files older than max_age_days."""
    if max_age_days is None:
        max_age_days = settings.trajectory.max_age_days

    sweeper = TrajectoryLogger(log_dir=settings.trajectory.log_dir, max_age_days=max_age_days)
    return {"deleted": sweeper.cleanup()}
