"""Experiment run, per-scenario result, summary, and comparison records."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import ConfigDict, Field

from coach_evals.schemas.scenarios import CamelModel
from coach_evals.schemas.scores import EvaluationScores


class ExperimentStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExperimentResult(CamelModel):
    """Outcome of one scenario within a run. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    scenario_id: str
    scenario_name: str
    trace_id: str
    evaluation: EvaluationScores
    latency: float = Field(..., ge=0, description="Generation + evaluation wall clock (ms)")
    used_ai: bool = Field(..., alias="usedAI")
    error: str | None = None


class ScoreAverages(CamelModel):
    clarity: float = 0.0
    helpfulness: float = 0.0
    tone: float = 0.0
    financial_alignment: float = 0.0
    average: float = 0.0


class ExperimentSummary(CamelModel):
    """Aggregate over all results of a run."""

    total_scenarios: int
    completed_scenarios: int
    failed_scenarios: int
    average_scores: ScoreAverages
    safety_flags_count: int
    average_latency: float
    ai_usage_rate: float = Field(..., description="Percent of results that used the model")


class ExperimentRun(CamelModel):
    experiment_id: str
    experiment_name: str
    prompt_version: str
    model_version: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    status: ExperimentStatus = ExperimentStatus.RUNNING
    results: list[ExperimentResult] = Field(default_factory=list)
    summary: ExperimentSummary | None = None


class MetricDeltas(CamelModel):
    """Per-metric change, experiment2 minus experiment1."""

    clarity: float
    helpfulness: float
    tone: float
    financial_alignment: float
    average: float


class RegressionFlags(CamelModel):
    clarity: bool
    helpfulness: bool
    tone: bool
    financial_alignment: bool
    average: bool
    safety: bool

    def count(self) -> int:
        return sum(1 for flagged in self.model_dump().values() if flagged)


class ExperimentComparison(CamelModel):
    experiment1: ExperimentRun
    experiment2: ExperimentRun
    improvements: MetricDeltas
    safety_improvement: int = Field(..., description="Fewer safety flags in experiment2 is positive")
    latency_change: float
    ai_usage_change: float
    regressions: RegressionFlags
    regression_count: int
    overall_improvement: bool
