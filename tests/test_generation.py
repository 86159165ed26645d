"""Tests for the text generator: retry policy, error mapping, reply unwrapping."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from coach_evals.generation import (
    Generation,
    GenerationTimeout,
    LLMTextGenerator,
    ProviderError,
    RateLimited,
    TextGenerator,
    TokenUsage,
    build_retrying,
    extract_response_text,
)

_REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


def _rate_limit_error() -> openai.RateLimitError:
    return openai.RateLimitError(
        "Rate limit exceeded",
        response=httpx.Response(429, request=_REQUEST),
        body=None,
    )


# ---------------------------------------------------------------------------
# build_retrying
# ---------------------------------------------------------------------------


class TestBuildRetrying:
    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        fn = AsyncMock(return_value="ok")
        assert await build_retrying(max_attempts=3, initial_interval=0)(fn) == "ok"
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_retryable_errors(self):
        fn = AsyncMock(side_effect=[GenerationTimeout("slow"), RateLimited("429"), "ok"])
        assert await build_retrying(max_attempts=3, initial_interval=0)(fn) == "ok"
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        fn = AsyncMock(side_effect=GenerationTimeout("slow"))
        with pytest.raises(GenerationTimeout):
            await build_retrying(max_attempts=2, initial_interval=0)(fn)
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_provider_error_not_retried(self):
        fn = AsyncMock(side_effect=ProviderError("bad request"))
        with pytest.raises(ProviderError):
            await build_retrying(max_attempts=3, initial_interval=0)(fn)
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_exponential_backoff_delays(self):
        fn = AsyncMock(side_effect=[RateLimited("a"), RateLimited("b"), "ok"])
        with patch("coach_evals.generation.asyncio.sleep", new=AsyncMock()) as sleep:
            retrying = build_retrying(max_attempts=3, initial_interval=0.8, backoff_factor=2.0)
            await retrying(fn)
        assert [c.args[0] for c in sleep.await_args_list] == pytest.approx([0.8, 1.6])

    @pytest.mark.asyncio
    async def test_zero_attempts_still_calls_once(self):
        fn = AsyncMock(return_value="ok")
        assert await build_retrying(max_attempts=0, initial_interval=0)(fn) == "ok"

    @pytest.mark.asyncio
    async def test_passes_arguments_through(self):
        fn = AsyncMock(return_value="ok")
        await build_retrying(max_attempts=1, initial_interval=0)(fn, "prompt", system="s")
        fn.assert_awaited_once_with("prompt", system="s")


# ---------------------------------------------------------------------------
# LLMTextGenerator
# ---------------------------------------------------------------------------


def _llm(**kwargs) -> AsyncMock:
    llm = AsyncMock()
    llm.ainvoke = AsyncMock(**kwargs)
    return llm


class TestLLMTextGenerator:
    def test_satisfies_protocol(self):
        assert isinstance(LLMTextGenerator(_llm()), TextGenerator)

    @pytest.mark.asyncio
    async def test_builds_messages_and_reads_usage(self):
        reply = AIMessage(
            content="Try a weekly budget.",
            usage_metadata={"input_tokens": 12, "output_tokens": 5, "total_tokens": 17},
        )
        llm = _llm(return_value=reply)
        result = await LLMTextGenerator(llm).generate("How do I save?", system="Be kind.")

        assert result == Generation(text="Try a weekly budget.", token_usage=TokenUsage(12, 5, 17))
        messages = llm.ainvoke.await_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == "Be kind."
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "How do I save?"

    @pytest.mark.asyncio
    async def test_no_system_message_when_omitted(self):
        llm = _llm(return_value=AIMessage(content="Hi"))
        result = await LLMTextGenerator(llm).generate("Hello")
        assert result.token_usage is None
        assert len(llm.ainvoke.await_args.args[0]) == 1

    @pytest.mark.asyncio
    async def test_joins_content_blocks(self):
        llm = _llm(return_value=AIMessage(content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Two."}]))
        result = await LLMTextGenerator(llm).generate("q")
        assert result.text == "Part one. Two."

    @pytest.mark.asyncio
    async def test_deadline_maps_to_timeout(self):
        async def _slow(messages):
            await asyncio.sleep(5)

        llm = _llm(side_effect=_slow)
        with pytest.raises(GenerationTimeout, match="timed out"):
            await LLMTextGenerator(llm, timeout=0.01).generate("q")

    @pytest.mark.asyncio
    async def test_rate_limit_maps_and_retries(self):
        llm = _llm(side_effect=[_rate_limit_error(), AIMessage(content="Recovered.")])
        gen = LLMTextGenerator(llm, max_attempts=2, initial_interval=0)
        assert (await gen.generate("q")).text == "Recovered."
        assert llm.ainvoke.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self):
        llm = _llm(side_effect=_rate_limit_error())
        with pytest.raises(RateLimited):
            await LLMTextGenerator(llm, max_attempts=2, initial_interval=0).generate("q")

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_timeout(self):
        llm = _llm(side_effect=openai.APIConnectionError(request=_REQUEST))
        with pytest.raises(GenerationTimeout):
            await LLMTextGenerator(llm).generate("q")

    @pytest.mark.asyncio
    async def test_other_errors_map_to_provider_error(self):
        llm = _llm(side_effect=ValueError("Response too short (0 chars, minimum 1)"))
        gen = LLMTextGenerator(llm, max_attempts=3, initial_interval=0)
        with pytest.raises(ProviderError, match="too short"):
            await gen.generate("q")
        assert llm.ainvoke.await_count == 1


# ---------------------------------------------------------------------------
# extract_response_text
# ---------------------------------------------------------------------------


class TestExtractResponseText:
    def test_plain_text_unchanged(self):
        assert extract_response_text("Track your dining for a week.") == "Track your dining for a week."

    def test_structured_reply_unwrapped(self):
        text = '{"response": "Set a $50 weekly cap.", "tone": "supportive", "safetyFlags": false}'
        assert extract_response_text(text) == "Set a $50 weekly cap."

    def test_fenced_structured_reply(self):
        text = '```json\n{"response": "Cook twice a week."}\n```'
        assert extract_response_text(text) == "Cook twice a week."

    def test_blank_response_field_keeps_raw(self):
        text = '{"response": "  ", "tone": "neutral"}'
        assert extract_response_text(text) == text

    def test_json_without_response_keeps_raw(self):
        text = '{"answer": "x"}'
        assert extract_response_text(text) == text
