"""Request/response Pydantic models for the API layer.

Bodies use the camelCase field names of the web app (``experimentName``,
``promptVersion``); snake_case is accepted too.
"""

from __future__ import annotations

from pydantic import Field, field_validator

from coach_evals.prompts.templates import DEFAULT_PROMPT_VERSION
from coach_evals.schemas.experiments import ExperimentComparison, ExperimentRun
from coach_evals.schemas.scenarios import CamelModel

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ExperimentCreateRequest(CamelModel):
    """Request body for running an experiment."""

    experiment_name: str = Field(..., min_length=1, max_length=200)
    prompt_version: str = Field(
        default=DEFAULT_PROMPT_VERSION,
        description="One of the PROMPT_VERSIONS values.",
    )
    model_version: str | None = None
    scenario_ids: list[str] | None = Field(
        default=None,
        description="Run only these scenarios. Unknown ids are skipped.",
    )

    @field_validator("experiment_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("experimentName must not be blank")
        return value


class CompareRequest(CamelModel):
    """Request body for comparing two completed runs."""

    experiment1: ExperimentRun
    experiment2: ExperimentRun


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ExperimentResponse(CamelModel):
    success: bool = True
    experiment: ExperimentRun


class ComparisonResponse(CamelModel):
    success: bool = True
    comparison: ExperimentComparison


class ScenarioInfo(CamelModel):
    id: str
    name: str
    should_flag_as_unsafe: bool | None = None


class ScenarioListResponse(CamelModel):
    dataset_version: str
    scenarios: list[ScenarioInfo]


class HealthResponse(CamelModel):
    status: str = "healthy"
    judge_enabled: bool
    max_concurrency: int
    prompt_versions: list[str]


class ErrorResponse(CamelModel):
    detail: str
