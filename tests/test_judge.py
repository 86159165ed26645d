"""Tests for the LLM-as-judge evaluator: prompt, parsing, timeout/retry handling."""

from __future__ import annotations

import asyncio
import json
from types import MappingProxyType
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeGenerator

from coach_evals.evals.judge import (
    JudgeEvaluator,
    build_judge_prompt,
    parse_judge_response,
    run_judge_evaluation,
)
from coach_evals.generation import Generation, GenerationTimeout, ProviderError, RateLimited
from coach_evals.prompts.templates import JUDGE_SYSTEM_PROMPT

VALID = {
    "clarity": 4,
    "helpfulness": 3.5,
    "tone": 5,
    "financialAlignment": 4,
    "safetyFlags": False,
    "reasoning": "Clear and kind.",
}


def _reply(**overrides) -> str:
    return json.dumps({**VALID, **overrides})


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestBuildJudgePrompt:
    def test_includes_context_and_reply(self, profile):
        prompt = build_judge_prompt("How do I save?", "Start with $20 a week.", profile)
        assert "- Goals: Build emergency fund, Save for vacation" in prompt
        assert "- Concerns: Spending too much, Not saving enough" in prompt
        assert "- Question: How do I save?" in prompt
        assert "Start with $20 a week." in prompt

    def test_read_only_mapping_profile(self):
        profile = MappingProxyType({"goals": ["Pay off card", " "], "concerns": ("Rent going up",)})
        prompt = build_judge_prompt("q", "r", profile)
        assert "- Goals: Pay off card\n" in prompt
        assert "- Concerns: Rent going up" in prompt

    def test_contains_json_contract(self, profile):
        prompt = build_judge_prompt("q", "r", profile)
        assert '"financialAlignment": <number 0-5>' in prompt
        assert '"safetyFlags": <boolean>' in prompt

    def test_accepts_dict_profile(self):
        prompt = build_judge_prompt("q", "r", {"goals": ["Pay off card"], "concerns": []})
        assert "- Goals: Pay off card" in prompt


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseJudgeResponse:
    def test_plain_json(self):
        scores = parse_judge_response(_reply())
        assert scores is not None
        assert scores.clarity == 4
        assert scores.helpfulness == 3.5
        assert scores.financial_alignment == 4
        assert scores.safety_flags is False
        assert scores.reasoning == "Clear and kind."

    def test_markdown_fence(self):
        scores = parse_judge_response(f"```json\n{_reply()}\n```")
        assert scores is not None
        assert scores.tone == 5

    def test_surrounding_prose(self):
        scores = parse_judge_response(f"Here is my evaluation: {_reply()} Hope that helps!")
        assert scores is not None
        assert scores.clarity == 4

    def test_clamps_out_of_range(self):
        scores = parse_judge_response(_reply(clarity=7, tone=-2))
        assert scores.clarity == 5
        assert scores.tone == 0

    def test_numeric_strings_accepted(self):
        assert parse_judge_response(_reply(helpfulness="3")).helpfulness == 3

    @pytest.mark.parametrize("flag,expected", [("false", False), ("no", False), ("0", False), ("yes", True), (1, True)])
    def test_safety_flag_coercion(self, flag, expected):
        assert parse_judge_response(_reply(safetyFlags=flag)).safety_flags is expected

    def test_blank_reasoning_is_none(self):
        assert parse_judge_response(_reply(reasoning="  ")).reasoning is None

    def test_missing_metric_rejected(self):
        data = dict(VALID)
        del data["tone"]
        assert parse_judge_response(json.dumps(data)) is None

    def test_missing_safety_flag_rejected(self):
        data = dict(VALID)
        del data["safetyFlags"]
        assert parse_judge_response(json.dumps(data)) is None

    def test_non_numeric_metric_rejected(self):
        assert parse_judge_response(_reply(clarity="high")) is None

    def test_boolean_metric_rejected(self):
        assert parse_judge_response(_reply(clarity=True)) is None

    def test_nan_metric_rejected(self):
        text = _reply().replace('"clarity": 4', '"clarity": NaN')
        assert parse_judge_response(text) is None

    def test_truncated_json_rejected(self):
        assert parse_judge_response('{"clarity": 4, "helpfulness": 3') is None

    def test_cut_off_inside_reasoning_rejected(self):
        text = (
            '{"clarity": 4, "helpfulness": 3, "tone": 5, "financialAlignment": 4, '
            '"safetyFlags": false, "reasoning": "The reply is warm but'
        )
        assert parse_judge_response(text) is None

    def test_cut_off_inside_number_rejected(self):
        text = '{"clarity": 4, "helpfulness": 3, "tone": 5, "safetyFlags": false, "financialAlignment": 1'
        assert parse_judge_response(text) is None

    def test_cut_off_fenced_reply_rejected(self):
        assert parse_judge_response("```json\n" + _reply()[:-20]) is None

    @pytest.mark.parametrize("text", ["", "   ", "I cannot evaluate this response."])
    def test_no_json_returns_none(self, text):
        assert parse_judge_response(text) is None


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class TestJudgeEvaluator:
    @pytest.mark.asyncio
    async def test_success_computes_averages(self, profile):
        gen = FakeGenerator([_reply()])
        result = await JudgeEvaluator(gen).evaluate("How do I save?", "Save $20 weekly.", profile)
        assert result is not None
        # mean = (4 + 3.5 + 5 + 4) / 4 = 4.125
        assert result.average_0_to_5 == 4.1
        assert result.average_0_to_10 == 8.3
        assert gen.systems == [JUDGE_SYSTEM_PROMPT]
        assert "Save $20 weekly." in gen.prompts[0]

    @pytest.mark.asyncio
    async def test_scaled_scores(self, profile):
        result = await JudgeEvaluator(FakeGenerator([_reply()])).evaluate("q", "r", profile)
        assert result.scaled_scores() == {
            "clarity": 8,
            "helpfulness": 7,
            "tone": 10,
            "financialAlignment": 8,
            "safetyFlags": False,
            "average": 8.3,
        }

    @pytest.mark.asyncio
    async def test_serializes_with_wire_aliases(self, profile):
        result = await JudgeEvaluator(FakeGenerator([_reply()])).evaluate("q", "r", profile)
        data = result.model_dump(by_alias=True)
        assert data["average0to5"] == 4.1
        assert data["average0to10"] == 8.3
        assert data["raw"]["financialAlignment"] == 4

    @pytest.mark.asyncio
    async def test_unparseable_reply_returns_none(self, profile):
        result = await JudgeEvaluator(FakeGenerator(["Looks great to me!"])).evaluate("q", "r", profile)
        assert result is None

    @pytest.mark.asyncio
    async def test_empty_reply_returns_none(self, profile):
        result = await JudgeEvaluator(FakeGenerator([Generation(text="   ")])).evaluate("q", "r", profile)
        assert result is None

    @pytest.mark.asyncio
    async def test_provider_error_not_retried(self, profile):
        gen = FakeGenerator([ProviderError("401 unauthorized"), _reply()])
        result = await JudgeEvaluator(gen, base_delay=0).evaluate("q", "r", profile)
        assert result is None
        assert len(gen.prompts) == 1

    @pytest.mark.asyncio
    async def test_timeout_retried_once(self, profile):
        gen = FakeGenerator([GenerationTimeout("slow"), _reply()])
        result = await JudgeEvaluator(gen, base_delay=0).evaluate("q", "r", profile)
        assert result is not None
        assert len(gen.prompts) == 2

    @pytest.mark.asyncio
    async def test_retry_waits_base_delay(self, profile):
        gen = FakeGenerator([RateLimited("429"), _reply()])
        with patch("coach_evals.generation.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await JudgeEvaluator(gen).evaluate("q", "r", profile)
        assert result is not None
        assert [c.args[0] for c in sleep.await_args_list] == pytest.approx([0.8])

    @pytest.mark.asyncio
    async def test_gives_up_after_one_retry(self, profile):
        gen = FakeGenerator([RateLimited("429"), RateLimited("429"), _reply()])
        result = await JudgeEvaluator(gen, base_delay=0).evaluate("q", "r", profile)
        assert result is None
        assert len(gen.prompts) == 2

    @pytest.mark.asyncio
    async def test_deadline_enforced(self, profile):
        class SlowGenerator:
            async def generate(self, prompt, *, system=None):
                await asyncio.sleep(5)
                return Generation(text=_reply())

        judge = JudgeEvaluator(SlowGenerator(), timeout=0.01, max_retries=0)
        assert await judge.evaluate("q", "r", profile) is None

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_none(self, profile):
        gen = FakeGenerator([RuntimeError("boom")])
        assert await JudgeEvaluator(gen).evaluate("q", "r", profile) is None

    @pytest.mark.asyncio
    async def test_run_judge_evaluation_helper(self, profile):
        result = await run_judge_evaluation(FakeGenerator([_reply(clarity=5)]), "q", "r", profile, base_delay=0)
        assert result.raw.clarity == 5
