"""Shared test fixtures."""

from __future__ import annotations

import os

import pytest

# Ensure tests don't accidentally call real APIs
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")
os.environ.setdefault("GROQ_API_KEY", "test-key")
os.environ.pop("LANGCHAIN_API_KEY", None)
os.environ.pop("JUDGE_ENABLED", None)

from coach_evals.generation import Generation, GenerationError, TokenUsage  # noqa: E402
from coach_evals.schemas.scenarios import UserProfile  # noqa: E402
from coach_evals.tracing import TraceEntry  # noqa: E402


class FakeGenerator:
    """Returns canned replies in order; exceptions in the list are raised."""

    def __init__(self, replies=None, default="Try setting a small budget step. I understand, you can do it."):
        self.replies = list(replies or [])
        self.default = default
        self.prompts: list[str] = []
        self.systems: list[str | None] = []

    async def generate(self, prompt: str, *, system: str | None = None) -> Generation:
        self.prompts.append(prompt)
        self.systems.append(system)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, Generation):
            return reply
        return Generation(text=reply, token_usage=TokenUsage(10, 20, 30))


class FailingGenerator:
    def __init__(self, exc: BaseException | None = None):
        self.exc = exc or GenerationError("provider down")
        self.calls = 0

    async def generate(self, prompt: str, *, system: str | None = None) -> Generation:
        self.calls += 1
        raise self.exc


class RecordingRecorder:
    def __init__(self):
        self.entries: list[TraceEntry] = []

    async def record(self, entry: TraceEntry) -> None:
        self.entries.append(entry)

    def evaluations(self, evaluator: str) -> list[TraceEntry]:
        return [e for e in self.entries if e.metadata.get("evaluator") == evaluator]


class BrokenRecorder:
    def __init__(self):
        self.calls = 0

    async def record(self, entry: TraceEntry) -> None:
        self.calls += 1
        raise RuntimeError("sink unavailable")


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        income_range="$50k-$75k",
        goals=("Build emergency fund", "Save for vacation"),
        concerns=("Spending too much", "Not saving enough"),
    )


@pytest.fixture
def recorder() -> RecordingRecorder:
    return RecordingRecorder()
