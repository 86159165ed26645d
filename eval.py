#!/usr/bin/env python3
"""Evaluation CLI: run coach prompt experiments and compare them.

Usage:
    # Run the full dataset against the structured prompt
    python eval.py run --name baseline --prompt-version v3-structured-json --output v3.json

    # Run two scenarios with the LLM judge enabled
    python eval.py run --name smoke --scenario overspending-dining --scenario safe-savings-advice --judge

    # Compare two saved runs (second is the candidate)
    python eval.py compare v1.json v3.json

    # List scenarios / create the LangSmith dataset
    python eval.py scenarios
    python eval.py create-dataset
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from coach_evals.config import get_eval_settings, get_settings, resolve_judge_enabled
from coach_evals.logging_config import setup_logging
from coach_evals.prompts.templates import PROMPT_VERSIONS

console = Console()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Coach Evals: heuristic + LLM-as-a-Judge experiments for coach prompts"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Run an experiment over the evaluation dataset")
    run_p.add_argument("--name", required=True, help="Experiment name")
    run_p.add_argument(
        "--prompt-version",
        default=None,
        choices=sorted(PROMPT_VERSIONS.values()),
        help="Coach prompt version (default: [runner].default_prompt_version)",
    )
    run_p.add_argument("--model-version", default=None, help="Free-form model label stored on the run")
    run_p.add_argument(
        "--scenario",
        dest="scenario_ids",
        action="append",
        default=None,
        metavar="ID",
        help="Only run this scenario (repeatable)",
    )
    run_p.add_argument(
        "--judge",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable/disable the LLM judge (default: JUDGE_ENABLED or evals.toml)",
    )
    run_p.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Scenarios in flight at once (default: [runner].max_concurrency)",
    )
    run_p.add_argument("--output", "-o", type=str, default=None, help="Write the run as JSON")

    cmp_p = sub.add_parser("compare", help="Compare two saved experiment runs")
    cmp_p.add_argument("baseline", help="Run JSON for experiment1 (baseline)")
    cmp_p.add_argument("candidate", help="Run JSON for experiment2 (candidate)")

    sub.add_parser("scenarios", help="List the evaluation scenarios")

    ds_p = sub.add_parser("create-dataset", help="Upload scenarios as a LangSmith dataset")
    ds_p.add_argument("--dataset-name", default="pennywise-coach-eval")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_run(args: argparse.Namespace) -> int:
    from coach_evals.evals.judge import JudgeEvaluator
    from coach_evals.evals.runner import ExperimentRunner, print_experiment_report
    from coach_evals.models import build_generator
    from coach_evals.tracing import get_trace_recorder

    settings = get_settings()
    eval_settings = get_eval_settings()

    # CLI > env > evals.toml
    judge_enabled = args.judge if args.judge is not None else resolve_judge_enabled(settings, eval_settings)
    prompt_version = args.prompt_version or eval_settings.runner.default_prompt_version
    max_concurrency = args.max_concurrency or eval_settings.runner.max_concurrency

    judge = None
    if judge_enabled:
        judge_cfg = eval_settings.roles.judge
        judge = JudgeEvaluator(
            build_generator("judge", settings, eval_settings),
            timeout=judge_cfg.timeout,
            max_retries=judge_cfg.max_retries,
            base_delay=judge_cfg.retry_base_delay,
        )

    runner = ExperimentRunner(
        build_generator("coach", settings, eval_settings),
        get_trace_recorder(settings),
        judge=judge,
        judge_enabled=judge_enabled,
        max_concurrency=max_concurrency,
    )

    console.print(f"\n[bold]Coach Evals[/bold] | {args.name} | prompt {prompt_version} | judge {'on' if judge_enabled else 'off'}\n")
    run = asyncio.run(
        runner.run_experiment(
            args.name,
            prompt_version,
            model_version=args.model_version,
            scenario_ids=args.scenario_ids,
        )
    )
    print_experiment_report(run)

    if args.output:
        Path(args.output).write_text(run.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        console.print(f"\n[green]Run saved to {args.output}[/green]")
    return 0


def cmd_compare(args: argparse.Namespace) -> int:
    from pydantic import ValidationError

    from coach_evals.evals.comparison import ComparisonError, compare_experiments, print_comparison_report
    from coach_evals.schemas.experiments import ExperimentRun

    runs = []
    for path in (args.baseline, args.candidate):
        try:
            runs.append(ExperimentRun.model_validate_json(Path(path).read_text(encoding="utf-8")))
        except FileNotFoundError:
            console.print(f"[red]File not found: {path}[/red]")
            return 1
        except ValidationError as exc:
            console.print(f"[red]Not a saved experiment run: {path} ({exc.error_count()} errors)[/red]")
            return 1

    try:
        comparison = compare_experiments(runs[0], runs[1])
    except ComparisonError as exc:
        console.print(f"[red]Cannot compare: {exc}[/red]")
        return 1
    print_comparison_report(comparison)
    return 0 if comparison.overall_improvement else 2


def cmd_scenarios(args: argparse.Namespace) -> int:
    from coach_evals.evals.dataset import DATASET_VERSION, EVAL_DATASET

    table = Table(title=f"Evaluation scenarios (v{DATASET_VERSION})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Safety probe", justify="center")
    for s in EVAL_DATASET:
        probe = {True: "[red]should flag[/red]", False: "[green]should pass[/green]"}.get(
            s.should_flag_as_unsafe, ""
        )
        table.add_row(s.id, s.name, probe)
    console.print(table)
    return 0


def cmd_create_dataset(args: argparse.Namespace) -> int:
    from coach_evals.evals.dataset import create_langsmith_dataset

    console.print("[bold]Creating LangSmith dataset from evaluation scenarios...[/bold]")
    created = create_langsmith_dataset(args.dataset_name)
    console.print("[green]Done.[/green]" if created else "[yellow]Dataset already exists.[/yellow]")
    return 0


COMMANDS = {
    "run": cmd_run,
    "compare": cmd_compare,
    "scenarios": cmd_scenarios,
    "create-dataset": cmd_create_dataset,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level or get_settings().log_level)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
