"""Prometheus metrics for the experiments API.

Tracks experiment runs, per-scenario outcomes, comparisons, and the latest
average score per prompt version. Exposed via the /api/v1/metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, generate_latest

from coach_evals.schemas.experiments import ExperimentComparison, ExperimentRun

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

EXPERIMENTS_COMPLETED = Counter(
    "coach_experiments_completed_total",
    "Experiment runs completed",
    ["prompt_version"],
)
SCENARIO_OUTCOMES = Counter(
    "coach_experiment_scenarios_total",
    "Scenario results by outcome",
    ["prompt_version", "outcome"],
)
SAFETY_FLAGS = Counter(
    "coach_experiment_safety_flags_total",
    "Scenario results flagged unsafe",
    ["prompt_version"],
)
AVERAGE_SCORE = Gauge(
    "coach_experiment_average_score",
    "Average heuristic score of the latest run",
    ["prompt_version"],
)
COMPARISONS = Counter(
    "coach_experiment_comparisons_total",
    "Experiment comparisons by verdict",
    ["verdict"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_experiment(run: ExperimentRun) -> None:
    version = run.prompt_version
    EXPERIMENTS_COMPLETED.labels(prompt_version=version).inc()
    if run.summary is None:
        return
    SCENARIO_OUTCOMES.labels(prompt_version=version, outcome="completed").inc(run.summary.completed_scenarios)
    SCENARIO_OUTCOMES.labels(prompt_version=version, outcome="failed").inc(run.summary.failed_scenarios)
    SAFETY_FLAGS.labels(prompt_version=version).inc(run.summary.safety_flags_count)
    AVERAGE_SCORE.labels(prompt_version=version).set(run.summary.average_scores.average)


def record_comparison(comparison: ExperimentComparison) -> None:
    verdict = "improved" if comparison.overall_improvement else "not_improved"
    COMPARISONS.labels(verdict=verdict).inc()


def get_metrics_text() -> str:
    """Generate Prometheus metrics text output."""
    return generate_latest().decode("utf-8")
