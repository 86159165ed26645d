"""Trace recording for experiment runs.

Each scenario produces one generation trace plus one evaluation trace per
evaluator. Traces go to LangSmith when LANGCHAIN_API_KEY is set; otherwise
they are only written to the structlog stream.

Recorders must never break a run: callers wrap ``record`` and log failures.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import structlog
from langsmith import Client

from coach_evals.config import Settings, get_settings

logger = structlog.get_logger(__name__)

TRACE_TAG = "pennywise-coach"


@dataclass
class TraceEntry:
    name: str
    trace_id: str
    experiment_name: str
    prompt_version: str
    model_version: str | None = None
    input: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    run_type: str = "chain"


def generate_trace_id() -> str:
    """``trace-<epoch ms>-<7 hex chars>``; unique per call."""
    return f"trace-{time.time_ns() // 1_000_000}-{secrets.token_hex(4)[:7]}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_generation_trace(
    *,
    trace_id: str,
    experiment_id: str,
    experiment_name: str,
    prompt_version: str,
    model_version: str | None,
    scenario: Any,
    response: str,
    latency: float,
    used_ai: bool,
    evaluation_score: float,
    token_usage: dict[str, int] | None = None,
) -> TraceEntry:
    """Trace of one coach generation for a scenario."""
    metadata: dict[str, Any] = {
        "timestamp": _now_iso(),
        "latency": latency,
        "usedAI": used_ai,
        "evaluationScore": evaluation_score,
        "experimentId": experiment_id,
    }
    if token_usage:
        metadata["tokenUsage"] = token_usage
    return TraceEntry(
        name=experiment_name,
        trace_id=trace_id,
        experiment_name=experiment_name,
        prompt_version=prompt_version,
        model_version=model_version,
        input={
            "userProfile": scenario.user_profile.model_dump(mode="json", by_alias=True),
            "transactions": [t.model_dump(mode="json", by_alias=True) for t in scenario.transactions],
            "userQuestion": scenario.user_question,
            "scenarioId": scenario.id,
            "scenarioName": scenario.name,
        },
        output={"response": response},
        metadata=metadata,
        tags=[TRACE_TAG, experiment_name, prompt_version],
        run_type="llm",
    )


def build_evaluation_trace(
    *,
    trace_id: str,
    experiment_id: str,
    experiment_name: str,
    prompt_version: str,
    model_version: str | None,
    scores: dict[str, Any],
    reasoning: str | None,
    evaluator: str,
) -> TraceEntry:
    """Trace of one evaluator's scores, linked to the generation by ``trace_id``."""
    return TraceEntry(
        name="evaluation",
        trace_id=trace_id,
        experiment_name=experiment_name,
        prompt_version=prompt_version,
        model_version=model_version,
        input={"traceId": trace_id},
        output={"scores": scores, "reasoning": reasoning},
        metadata={
            "timestamp": _now_iso(),
            "score": scores.get("average"),
            "safetyFlags": scores.get("safetyFlags"),
            "evaluator": evaluator,
            "experimentId": experiment_id,
        },
        tags=[TRACE_TAG, "evaluation", evaluator, trace_id],
    )


# ---------------------------------------------------------------------------
# Recorders
# ---------------------------------------------------------------------------


@runtime_checkable
class TraceRecorder(Protocol):
    async def record(self, entry: TraceEntry) -> None: ...


class LogTraceRecorder:
    """Writes a one-line summary of each trace to the log."""

    async def record(self, entry: TraceEntry) -> None:
        logger.info(
            "trace_recorded",
            name=entry.name,
            trace_id=entry.trace_id,
            experiment=entry.experiment_name,
            prompt_version=entry.prompt_version,
            evaluator=entry.metadata.get("evaluator"),
            score=entry.metadata.get("score", entry.metadata.get("evaluationScore")),
        )


class LangSmithTraceRecorder:
    """Sends traces to a LangSmith project.

    ``Client.create_run`` is blocking, so it runs in a worker thread.
    """

    def __init__(self, client: Any = None, project_name: str = "coach-evals") -> None:
        self.client = client if client is not None else Client()
        self.project_name = project_name

    async def record(self, entry: TraceEntry) -> None:
        inputs = {
            **entry.input,
            "traceId": entry.trace_id,
            "promptVersion": entry.prompt_version,
        }
        if entry.model_version:
            inputs["modelVersion"] = entry.model_version
        await asyncio.to_thread(
            self.client.create_run,
            name=entry.name,
            run_type=entry.run_type,
            inputs=inputs,
            outputs=entry.output,
            extra={"metadata": entry.metadata},
            tags=entry.tags,
            project_name=self.project_name,
        )
        logger.debug("langsmith_trace_sent", trace_id=entry.trace_id, name=entry.name)


def get_trace_recorder(settings: Settings | None = None) -> TraceRecorder:
    """LangSmith recorder when an API key is configured, else the log recorder."""
    settings = settings or get_settings()
    if settings.langchain_api_key:
        logger.info("trace_sink_langsmith", project=settings.langchain_project)
        return LangSmithTraceRecorder(
            Client(api_key=settings.langchain_api_key),
            project_name=settings.langchain_project,
        )
    logger.info("trace_sink_log_only")
    return LogTraceRecorder()
