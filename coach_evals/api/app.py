"""FastAPI application for the coach evaluation engine.

Provides REST endpoints to run an experiment over the evaluation dataset,
compare two runs for regressions, list scenarios, and monitor health.

Usage:
    uvicorn coach_evals.api.app:app --reload          # Development
    uvicorn coach_evals.api.app:app --host 0.0.0.0    # Production (behind reverse proxy)
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from coach_evals.api.dependencies import get_runner, init_dependencies, reset_dependencies
from coach_evals.api.metrics import get_metrics_text, record_comparison, record_experiment
from coach_evals.api.schemas import (
    ComparisonResponse,
    CompareRequest,
    ErrorResponse,
    ExperimentCreateRequest,
    ExperimentResponse,
    HealthResponse,
    ScenarioInfo,
    ScenarioListResponse,
)
from coach_evals.config import get_eval_settings, get_settings, resolve_judge_enabled
from coach_evals.evals.comparison import ComparisonError, compare_experiments
from coach_evals.evals.dataset import DATASET_VERSION, EVAL_DATASET
from coach_evals.evals.judge import JudgeEvaluator
from coach_evals.evals.runner import ExperimentRunner, ExperimentValidationError
from coach_evals.logging_config import setup_logging
from coach_evals.models import build_generator
from coach_evals.prompts.templates import PROMPT_VERSIONS
from coach_evals.tracing import get_trace_recorder

logger = structlog.get_logger(__name__)


def build_runner() -> ExperimentRunner:
    """Wire the runner from .env and evals.toml."""
    settings = get_settings()
    eval_settings = get_eval_settings()
    judge_enabled = resolve_judge_enabled(settings, eval_settings)

    judge = None
    if judge_enabled:
        judge_cfg = eval_settings.roles.judge
        judge = JudgeEvaluator(
            build_generator("judge", settings, eval_settings),
            timeout=judge_cfg.timeout,
            max_retries=judge_cfg.max_retries,
            base_delay=judge_cfg.retry_base_delay,
        )

    return ExperimentRunner(
        build_generator("coach", settings, eval_settings),
        get_trace_recorder(settings),
        judge=judge,
        judge_enabled=judge_enabled,
        max_concurrency=eval_settings.runner.max_concurrency,
    )


# ---------------------------------------------------------------------------
# App lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup, clean up on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=True)

    runner = build_runner()
    init_dependencies(runner)
    logger.info(
        "api_started",
        judge_enabled=runner.judge_enabled,
        max_concurrency=runner.max_concurrency,
    )

    yield

    reset_dependencies()
    logger.info("api_shutdown")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Coach Evals API",
    description=(
        "REST API for running evaluation experiments against coach prompt "
        "versions and comparing runs for regressions."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: configurable via COACH_EVALS_CORS_ORIGINS env var
cors_origins = os.environ.get("COACH_EVALS_CORS_ORIGINS", "").split(",")
cors_origins = [o.strip() for o in cors_origins if o.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.post(
    "/api/v1/experiments",
    response_model=ExperimentResponse,
    responses={422: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_experiment(
    request: ExperimentCreateRequest,
    runner: ExperimentRunner = Depends(get_runner),
):
    """Run an experiment and return the completed run.

    The call blocks until every selected scenario has been generated,
    evaluated, and traced.
    """
    try:
        run = await runner.run_experiment(
            request.experiment_name,
            request.prompt_version,
            model_version=request.model_version,
            scenario_ids=request.scenario_ids,
        )
    except ExperimentValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    record_experiment(run)
    return ExperimentResponse(experiment=run)


@app.post(
    "/api/v1/experiments/compare",
    response_model=ComparisonResponse,
    responses={422: {"model": ErrorResponse}},
)
async def compare(request: CompareRequest):
    """Compare experiment2 against the experiment1 baseline."""
    try:
        comparison = compare_experiments(request.experiment1, request.experiment2)
    except ComparisonError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    record_comparison(comparison)
    return ComparisonResponse(comparison=comparison)


@app.get("/api/v1/scenarios", response_model=ScenarioListResponse)
async def list_scenarios():
    """List the evaluation scenarios."""
    return ScenarioListResponse(
        dataset_version=DATASET_VERSION,
        scenarios=[
            ScenarioInfo(id=s.id, name=s.name, should_flag_as_unsafe=s.should_flag_as_unsafe)
            for s in EVAL_DATASET
        ],
    )


# ---------------------------------------------------------------------------
# Health & Metrics
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check(runner: ExperimentRunner = Depends(get_runner)):
    """Health check endpoint for load balancers and monitoring."""
    return HealthResponse(
        judge_enabled=runner.judge_enabled,
        max_concurrency=runner.max_concurrency,
        prompt_versions=list(PROMPT_VERSIONS.values()),
    )


@app.get("/api/v1/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=get_metrics_text(),
        media_type="text/plain; charset=utf-8",
    )
