"""Regression comparison between two experiment runs.

Deltas are experiment2 minus experiment1: a positive score delta is an
improvement, and ``safety_improvement`` is positive when experiment2 has
fewer safety flags. Comparisons use the heuristic summaries only.
"""

from __future__ import annotations

import structlog
from rich.console import Console
from rich.table import Table

from coach_evals.schemas.experiments import (
    ExperimentComparison,
    ExperimentRun,
    MetricDeltas,
    RegressionFlags,
)

logger = structlog.get_logger(__name__)
console = Console()

# A score drop larger than this counts as a regression
REGRESSION_THRESHOLD = 0.5

_METRICS = ("clarity", "helpfulness", "tone", "financial_alignment", "average")


class ComparisonError(ValueError):
    """One of the runs cannot be compared (no summary)."""


def _delta(after: float, before: float) -> float:
    return round(after - before, 10)


def compare_experiments(experiment1: ExperimentRun, experiment2: ExperimentRun) -> ExperimentComparison:
    """Compare ``experiment2`` against the ``experiment1`` baseline."""
    for label, run in (("experiment1", experiment1), ("experiment2", experiment2)):
        if run.summary is None:
            raise ComparisonError(f"{label} ({run.experiment_id}) has no summary")

    summary1 = experiment1.summary
    summary2 = experiment2.summary

    improvements = MetricDeltas(
        **{
            metric: _delta(
                getattr(summary2.average_scores, metric),
                getattr(summary1.average_scores, metric),
            )
            for metric in _METRICS
        }
    )
    safety_improvement = summary1.safety_flags_count - summary2.safety_flags_count

    regressions = RegressionFlags(
        **{metric: getattr(improvements, metric) < -REGRESSION_THRESHOLD for metric in _METRICS},
        safety=safety_improvement < 0,
    )

    # The average-regression check is implied by average > 0; both are kept
    overall_improvement = improvements.average > 0 and not regressions.safety and not regressions.average

    comparison = ExperimentComparison(
        experiment1=experiment1,
        experiment2=experiment2,
        improvements=improvements,
        safety_improvement=safety_improvement,
        latency_change=_delta(summary2.average_latency, summary1.average_latency),
        ai_usage_change=_delta(summary2.ai_usage_rate, summary1.ai_usage_rate),
        regressions=regressions,
        regression_count=regressions.count(),
        overall_improvement=overall_improvement,
    )
    logger.info(
        "experiments_compared",
        baseline=experiment1.experiment_id,
        candidate=experiment2.experiment_id,
        average_delta=improvements.average,
        regressions=comparison.regression_count,
        overall_improvement=overall_improvement,
    )
    return comparison


def _fmt_delta(delta: float, regressed: bool) -> str:
    if regressed:
        return f"[red]{delta:+.2f}[/red]"
    if delta > 0:
        return f"[green]{delta:+.2f}[/green]"
    return f"{delta:+.2f}"


def print_comparison_report(comparison: ExperimentComparison, output: Console | None = None) -> None:
    """Print metric deltas and the verdict using rich."""
    out = output or console
    exp1, exp2 = comparison.experiment1, comparison.experiment2

    table = Table(
        title=f"{exp1.experiment_name} ({exp1.prompt_version}) -> {exp2.experiment_name} ({exp2.prompt_version})",
        show_lines=True,
    )
    table.add_column("Metric", style="cyan")
    table.add_column("Baseline", justify="center")
    table.add_column("Candidate", justify="center")
    table.add_column("Delta", justify="center")
    table.add_column("Regression", justify="center")

    labels = {
        "clarity": "Clarity",
        "helpfulness": "Helpfulness",
        "tone": "Tone",
        "financial_alignment": "Financial alignment",
        "average": "Average",
    }
    for metric, label in labels.items():
        regressed = getattr(comparison.regressions, metric)
        table.add_row(
            label,
            f"{getattr(exp1.summary.average_scores, metric):.2f}",
            f"{getattr(exp2.summary.average_scores, metric):.2f}",
            _fmt_delta(getattr(comparison.improvements, metric), regressed),
            "[red]yes[/red]" if regressed else "no",
        )
    table.add_row(
        "Safety flags",
        str(exp1.summary.safety_flags_count),
        str(exp2.summary.safety_flags_count),
        _fmt_delta(comparison.safety_improvement, comparison.regressions.safety),
        "[red]yes[/red]" if comparison.regressions.safety else "no",
    )

    out.print()
    out.print(table)
    out.print(
        f"[bold]Latency change:[/bold] {comparison.latency_change:+.0f} ms  "
        f"[bold]AI usage change:[/bold] {comparison.ai_usage_change:+.0f} pts"
    )
    verdict = (
        "[bold green]IMPROVED[/bold green]"
        if comparison.overall_improvement
        else "[bold yellow]NOT IMPROVED[/bold yellow]"
    )
    out.print(f"[bold]Verdict:[/bold] {verdict} ({comparison.regression_count} regressions)")
