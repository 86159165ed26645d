"""Text generation capability used by the experiment runner and the judge.

Wraps a langchain chat ``Runnable`` (see ``coach_evals.models.create_llm``)
behind a small async interface with typed failures:

- ``GenerationTimeout``: the call exceeded its deadline (retried)
- ``RateLimited``: the provider throttled us (retried with backoff)
- ``ProviderError``: anything else the provider raised (not retried)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import openai
import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.runnables import Runnable
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from coach_evals.utils.structured_output import extract_json_object

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GenerationError(Exception):
    """Base class for text generation failures."""


class ProviderError(GenerationError):
    """The provider rejected or failed the request."""


class GenerationTimeout(GenerationError):
    """The request did not finish before its deadline."""


class RateLimited(GenerationError):
    """The provider asked us to slow down."""


_RETRYABLE = (GenerationTimeout, RateLimited)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class Generation:
    text: str
    token_usage: TokenUsage | None = None


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(self, prompt: str, *, system: str | None = None) -> Generation: ...


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "generation_retry",
        attempt=state.attempt_number,
        delay=round(state.next_action.sleep, 3) if state.next_action else None,
        error=str(exc),
    )


def build_retrying(
    *,
    max_attempts: int,
    initial_interval: float,
    backoff_factor: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = _RETRYABLE,
) -> AsyncRetrying:
    """Retry controller for generation calls.

    Only exceptions in ``retry_on`` are retried; the delay before attempt
    ``n + 1`` is ``initial_interval * backoff_factor ** (n - 1)``. The last
    failure is re-raised as is.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=initial_interval, exp_base=backoff_factor, min=0),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        sleep=asyncio.sleep,
        reraise=True,
    )


# ---------------------------------------------------------------------------
# LangChain-backed generator
# ---------------------------------------------------------------------------


def _token_usage(message: Any) -> TokenUsage | None:
    usage = getattr(message, "usage_metadata", None)
    if not usage:
        return None
    return TokenUsage(
        prompt_tokens=usage.get("input_tokens", 0),
        completion_tokens=usage.get("output_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
    )


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        # Multi-part content blocks: keep the text parts only
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return content if isinstance(content, str) else str(content or "")


class LLMTextGenerator:
    """``TextGenerator`` over a langchain chat model or fallback chain."""

    def __init__(
        self,
        llm: Runnable,
        *,
        timeout: float = 30.0,
        max_attempts: int = 1,
        initial_interval: float = 1.0,
        backoff_factor: float = 2.0,
    ) -> None:
        self.llm = llm
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.initial_interval = initial_interval
        self.backoff_factor = backoff_factor

    async def generate(self, prompt: str, *, system: str | None = None) -> Generation:
        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        retrying = build_retrying(
            max_attempts=self.max_attempts,
            initial_interval=self.initial_interval,
            backoff_factor=self.backoff_factor,
        )
        return await retrying(self._invoke_once, messages)

    async def _invoke_once(self, messages: list) -> Generation:
        try:
            response = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
        except TimeoutError as exc:
            raise GenerationTimeout(f"generation timed out after {self.timeout}s") from exc
        except openai.RateLimitError as exc:
            raise RateLimited(str(exc)) from exc
        except (openai.APITimeoutError, openai.APIConnectionError) as exc:
            raise GenerationTimeout(str(exc)) from exc
        except Exception as exc:
            raise ProviderError(str(exc) or type(exc).__name__) from exc

        return Generation(text=_message_text(response), token_usage=_token_usage(response))


# ---------------------------------------------------------------------------
# Reply text
# ---------------------------------------------------------------------------


def extract_response_text(text: str) -> str:
    """Return the ``response`` field of a structured (v3) reply, else ``text``."""
    data = extract_json_object(text)
    if data is not None:
        response = data.get("response")
        if isinstance(response, str) and response.strip():
            return response
    return text
