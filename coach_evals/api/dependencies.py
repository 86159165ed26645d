"""FastAPI dependency injection for the experiments API.

The experiment runner is built once at startup and injected into route
handlers via FastAPI's Depends(). Tests swap it with
``app.dependency_overrides[get_runner]``.
"""

from __future__ import annotations

from fastapi import HTTPException

from coach_evals.evals.runner import ExperimentRunner

# ---------------------------------------------------------------------------
# Singleton instances (initialized in app lifespan)
# ---------------------------------------------------------------------------

_runner: ExperimentRunner | None = None


def init_dependencies(runner: ExperimentRunner) -> None:
    """Initialize shared dependency instances. Called once at app startup."""
    global _runner
    _runner = runner


def reset_dependencies() -> None:
    global _runner
    _runner = None


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_runner() -> ExperimentRunner:
    """Get the shared experiment runner."""
    if _runner is None:
        raise HTTPException(status_code=500, detail="Experiment runner not initialized")
    return _runner
