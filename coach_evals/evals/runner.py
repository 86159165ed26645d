"""Experiment runner.

Runs the fixed scenario dataset (or a subset) against one coach prompt
version, scores every reply with the heuristic evaluator (and optionally the
LLM judge), records traces, and produces an ``ExperimentRun`` with a summary.

One scenario failing never aborts the run; it yields a zero-score result.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

import structlog
from rich.console import Console
from rich.table import Table

from coach_evals.evals.dataset import EVAL_DATASET, select_scenarios
from coach_evals.evals.heuristics import evaluate_response
from coach_evals.evals.judge import JudgeEvaluator
from coach_evals.generation import GenerationError, TextGenerator, extract_response_text
from coach_evals.prompts.templates import (
    COACH_SYSTEM_PROMPT,
    PROMPT_VERSIONS,
    get_coach_prompt,
    is_valid_prompt_version,
)
from coach_evals.schemas.experiments import (
    ExperimentResult,
    ExperimentRun,
    ExperimentStatus,
    ExperimentSummary,
    ScoreAverages,
)
from coach_evals.schemas.scenarios import EvalScenario
from coach_evals.schemas.scores import EvaluationScores
from coach_evals.tracing import (
    TraceEntry,
    TraceRecorder,
    build_evaluation_trace,
    build_generation_trace,
    generate_trace_id,
)

logger = structlog.get_logger(__name__)
console = Console()

PLACEHOLDER_RESPONSE = "I understand you're asking about {question}. Let me help you with that."


class ExperimentValidationError(ValueError):
    """The experiment request is invalid; raised before any scenario runs."""


def generate_experiment_id(experiment_name: str, prompt_version: str) -> str:
    """``<name>-<version>-<epoch ns>-<suffix>``; unique per call."""
    return f"{experiment_name}-{prompt_version}-{time.time_ns()}-{secrets.token_hex(3)}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class ExperimentRunner:
    """Drives one experiment over the scenario dataset.

    Args:
        generator: Coach text generator.
        recorder: Trace sink; its failures are logged and ignored.
        dataset: Scenarios to draw from.
        judge: Optional LLM judge, used only when ``judge_enabled``.
        judge_enabled: Explicit judge switch (see ``resolve_judge_enabled``).
        max_concurrency: Scenarios in flight at once; 1 runs them in order.
    """

    def __init__(
        self,
        generator: TextGenerator,
        recorder: TraceRecorder,
        *,
        dataset: Sequence[EvalScenario] = EVAL_DATASET,
        judge: JudgeEvaluator | None = None,
        judge_enabled: bool = False,
        max_concurrency: int = 1,
    ) -> None:
        self.generator = generator
        self.recorder = recorder
        self.dataset = dataset
        self.judge = judge
        self.judge_enabled = judge_enabled
        self.max_concurrency = max(1, max_concurrency)

    async def run_experiment(
        self,
        experiment_name: str,
        prompt_version: str,
        model_version: str | None = None,
        scenario_ids: Iterable[str] | None = None,
    ) -> ExperimentRun:
        if not experiment_name or not experiment_name.strip():
            raise ExperimentValidationError("experimentName is required")
        if not is_valid_prompt_version(prompt_version):
            raise ExperimentValidationError(
                f"Invalid promptVersion {prompt_version!r}; "
                f"expected one of {sorted(PROMPT_VERSIONS.values())}"
            )

        run = ExperimentRun(
            experiment_id=generate_experiment_id(experiment_name, prompt_version),
            experiment_name=experiment_name,
            prompt_version=prompt_version,
            model_version=model_version,
            start_time=_now(),
            status=ExperimentStatus.RUNNING,
        )
        scenarios = select_scenarios(scenario_ids, self.dataset)
        log = logger.bind(experiment_id=run.experiment_id)
        log.info(
            "experiment_start",
            scenarios=len(scenarios),
            prompt_version=prompt_version,
            judge_enabled=self.judge_enabled and self.judge is not None,
        )

        if self.max_concurrency == 1:
            for scenario in scenarios:
                run.results.append(await self._run_scenario_safely(run, scenario))
        else:
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def _bounded(scenario: EvalScenario) -> ExperimentResult:
                async with semaphore:
                    return await self._run_scenario_safely(run, scenario)

            run.results.extend(await asyncio.gather(*(_bounded(s) for s in scenarios)))

        run.summary = calculate_experiment_summary(run.results)
        run.end_time = _now()
        run.status = ExperimentStatus.COMPLETED
        log.info(
            "experiment_complete",
            completed=run.summary.completed_scenarios,
            failed=run.summary.failed_scenarios,
            average=run.summary.average_scores.average,
            safety_flags=run.summary.safety_flags_count,
        )
        return run

    async def _run_scenario_safely(self, run: ExperimentRun, scenario: EvalScenario) -> ExperimentResult:
        try:
            return await self._run_scenario(run, scenario)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error(
                "scenario_failed",
                experiment_id=run.experiment_id,
                scenario_id=scenario.id,
                error=message,
                exc_info=True,
            )
            return ExperimentResult(
                scenario_id=scenario.id,
                scenario_name=scenario.name,
                trace_id=generate_trace_id(),
                evaluation=EvaluationScores.failed(f"Error: {message}"),
                latency=0,
                used_ai=False,
                error=message,
            )

    async def _run_scenario(self, run: ExperimentRun, scenario: EvalScenario) -> ExperimentResult:
        trace_id = generate_trace_id()
        started = time.perf_counter()

        prompt = get_coach_prompt(
            run.prompt_version,
            scenario.user_profile,
            [],
            scenario.user_question,
            transactions=scenario.transactions,
        )

        used_ai = False
        error: str | None = None
        token_usage = None
        try:
            generation = await self.generator.generate(prompt, system=COACH_SYSTEM_PROMPT)
            response = extract_response_text(generation.text)
            token_usage = generation.token_usage
            used_ai = True
        except GenerationError as exc:
            error = str(exc) or "AI generation failed"
            response = PLACEHOLDER_RESPONSE.format(question=scenario.user_question)
            logger.warning(
                "generation_fallback",
                scenario_id=scenario.id,
                error=error,
                error_type=type(exc).__name__,
            )

        evaluation = evaluate_response(response, scenario.user_question, scenario.user_profile)
        latency = round((time.perf_counter() - started) * 1000, 3)

        trace_context = dict(
            trace_id=trace_id,
            experiment_id=run.experiment_id,
            experiment_name=run.experiment_name,
            prompt_version=run.prompt_version,
            model_version=run.model_version,
        )
        await self._record(
            build_generation_trace(
                **trace_context,
                scenario=scenario,
                response=response,
                latency=latency,
                used_ai=used_ai,
                evaluation_score=evaluation.average,
                token_usage=token_usage.as_dict() if token_usage else None,
            )
        )
        await self._record(
            build_evaluation_trace(
                **trace_context,
                scores=evaluation.model_dump(by_alias=True, exclude={"reasoning"}),
                reasoning=evaluation.reasoning,
                evaluator="heuristic",
            )
        )

        if self.judge_enabled and self.judge is not None:
            judged = await self.judge.evaluate(scenario.user_question, response, scenario.user_profile)
            if judged is not None:
                await self._record(
                    build_evaluation_trace(
                        **trace_context,
                        scores=judged.scaled_scores(),
                        reasoning=judged.raw.reasoning,
                        evaluator="llm_judge",
                    )
                )

        logger.info(
            "scenario_complete",
            experiment_id=run.experiment_id,
            scenario_id=scenario.id,
            average=evaluation.average,
            used_ai=used_ai,
        )
        return ExperimentResult(
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            trace_id=trace_id,
            evaluation=evaluation,
            latency=latency,
            used_ai=used_ai,
            error=error,
        )

    async def _record(self, entry: TraceEntry) -> None:
        try:
            await self.recorder.record(entry)
        except Exception:
            logger.warning(
                "trace_record_failed",
                trace_id=entry.trace_id,
                name=entry.name,
                exc_info=True,
            )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def calculate_experiment_summary(results: Sequence[ExperimentResult]) -> ExperimentSummary:
    """Aggregate a run's results.

    Score and latency means cover results without an error; the safety
    count and AI usage rate cover every result.
    """
    completed = [r for r in results if not r.error]
    divisor = len(completed) or 1
    total = len(results)

    def _mean(attr: str) -> float:
        return sum(getattr(r.evaluation, attr) for r in completed) / divisor

    return ExperimentSummary(
        total_scenarios=total,
        completed_scenarios=len(completed),
        failed_scenarios=total - len(completed),
        average_scores=ScoreAverages(
            clarity=_mean("clarity"),
            helpfulness=_mean("helpfulness"),
            tone=_mean("tone"),
            financial_alignment=_mean("financial_alignment"),
            average=_mean("average"),
        ),
        safety_flags_count=sum(1 for r in results if r.evaluation.safety_flags),
        average_latency=sum(r.latency for r in completed) / divisor,
        ai_usage_rate=(sum(1 for r in results if r.used_ai) / total * 100) if total else 0.0,
    )


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def _fmt_score(score: float) -> str:
    if score >= 8:
        return f"[green]{score:.1f}[/green]"
    if score >= 6:
        return f"[yellow]{score:.1f}[/yellow]"
    return f"[red]{score:.1f}[/red]"


def print_experiment_report(run: ExperimentRun, output: Console | None = None) -> None:
    """Print per-scenario scores and the run summary using rich."""
    out = output or console
    if not run.results:
        out.print("[yellow]No results to display.[/yellow]")
        return

    table = Table(title=f"Experiment: {run.experiment_name} ({run.prompt_version})", show_lines=True)
    table.add_column("Scenario", style="cyan", max_width=40)
    table.add_column("Clarity", justify="center")
    table.add_column("Helpful", justify="center")
    table.add_column("Tone", justify="center")
    table.add_column("Alignment", justify="center")
    table.add_column("Avg", justify="center")
    table.add_column("Safety", justify="center")
    table.add_column("AI", justify="center")
    table.add_column("Latency", justify="right")

    for r in run.results:
        ev = r.evaluation
        table.add_row(
            r.scenario_name,
            _fmt_score(ev.clarity),
            _fmt_score(ev.helpfulness),
            _fmt_score(ev.tone),
            _fmt_score(ev.financial_alignment),
            _fmt_score(ev.average),
            "[red]FLAG[/red]" if ev.safety_flags else "[green]ok[/green]",
            "yes" if r.used_ai else "[yellow]fallback[/yellow]",
            f"{r.latency:.0f} ms",
        )

    out.print()
    out.print(table)

    summary = run.summary
    if summary is None:
        return
    averages = summary.average_scores
    out.print(f"\n[bold]Experiment ID:[/bold] {run.experiment_id}")
    out.print(
        f"[bold]Scenarios:[/bold] {summary.completed_scenarios}/{summary.total_scenarios} completed, "
        f"{summary.failed_scenarios} failed"
    )
    out.print(
        f"[bold]Averages:[/bold] clarity {averages.clarity:.2f}, helpfulness {averages.helpfulness:.2f}, "
        f"tone {averages.tone:.2f}, alignment {averages.financial_alignment:.2f}, "
        f"overall {averages.average:.2f}"
    )
    out.print(
        f"[bold]Safety flags:[/bold] {summary.safety_flags_count}  "
        f"[bold]Avg latency:[/bold] {summary.average_latency:.0f} ms  "
        f"[bold]AI usage:[/bold] {summary.ai_usage_rate:.0f}%"
    )
