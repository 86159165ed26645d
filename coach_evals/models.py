"""LLM factory with fallback provider chain.

Primary: OpenRouter (ChatOpenAI against the OpenRouter base URL)
Fallback 1: Groq (cloud, fast inference)
Fallback 2: Ollama (local)

Models, temperatures, timeouts, and fallback providers are configured per
role ("coach", "judge") in evals.toml.

Each provider is piped with a response-length validator so that empty or
suspiciously short replies cascade to the next provider via with_fallbacks().
"""

from __future__ import annotations

import structlog
from langchain_core.runnables import Runnable, RunnableLambda
from langchain_openai import ChatOpenAI

from coach_evals.config import EvalSettings, Settings, get_eval_settings, get_settings
from coach_evals.generation import LLMTextGenerator

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Response length validator
# ---------------------------------------------------------------------------


def _make_length_validator(min_chars: int) -> RunnableLambda:
    """Runnable that raises ``ValueError`` on replies shorter than ``min_chars``.

    Piped after a provider (``llm | validator``) so ``with_fallbacks()`` moves
    on to the next provider.
    """

    def _validate(response):  # noqa: ANN001
        content = response.content if response.content else ""
        stripped = content.strip() if isinstance(content, str) else str(content)
        if len(stripped) < min_chars:
            raise ValueError(
                f"Response too short ({len(stripped)} chars, minimum {min_chars})"
            )
        return response

    return RunnableLambda(_validate)


# ---------------------------------------------------------------------------
# LLM factory
# ---------------------------------------------------------------------------


def create_llm(
    role: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    settings: Settings | None = None,
    eval_settings: EvalSettings | None = None,
) -> Runnable:
    """Create the chat model chain for ``role``.

    Args:
        role: "coach" or "judge"; selects the [roles.<role>] table.
        temperature: Sampling temperature. None = read from evals.toml.
        max_tokens: Reply token cap. None = read from evals.toml.
        settings: Environment settings; loaded from env if not provided.
        eval_settings: evals.toml settings; cached file if not provided.

    Returns:
        ``primary | validator``, wrapped with fallbacks when Groq or Ollama
        are enabled.
    """
    settings = settings or get_settings()
    eval_settings = eval_settings or get_eval_settings()

    role_cfg = eval_settings.get_role_config(role)
    model = eval_settings.get_model(role)
    timeout = role_cfg.timeout
    min_chars = eval_settings.defaults.min_response_length

    if temperature is None:
        temperature = eval_settings.get_temperature(role)
    if max_tokens is None:
        max_tokens = role_cfg.max_tokens

    kwargs = dict(
        model=model,
        temperature=temperature,
        openai_api_key=settings.openrouter_api_key,
        openai_api_base=settings.openrouter_base_url,
        timeout=timeout,
        # Retries are owned by LLMTextGenerator
        max_retries=0,
    )
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens

    validator = _make_length_validator(min_chars)
    primary_chain: Runnable = ChatOpenAI(**kwargs) | validator

    fallbacks: list[Runnable] = []

    if eval_settings.providers.groq.enabled and settings.groq_api_key:
        from langchain_groq import ChatGroq

        groq_model = eval_settings.get_groq_model(role)
        groq_kwargs = dict(
            model=groq_model,
            temperature=temperature,
            api_key=settings.groq_api_key,
            timeout=timeout,
        )
        if max_tokens is not None:
            groq_kwargs["max_tokens"] = max_tokens
        fallbacks.append(ChatGroq(**groq_kwargs) | validator)
        logger.debug("groq_fallback_configured", role=role, model=groq_model)

    if eval_settings.providers.ollama.enabled:
        from langchain_ollama import ChatOllama

        ollama_model = eval_settings.get_ollama_model(role)
        ollama_kwargs = dict(
            model=ollama_model,
            temperature=temperature,
            base_url=eval_settings.providers.ollama.base_url or "http://localhost:11434",
        )
        if max_tokens is not None:
            ollama_kwargs["num_predict"] = max_tokens
        fallbacks.append(ChatOllama(**ollama_kwargs) | validator)
        logger.debug("ollama_fallback_configured", role=role, model=ollama_model)

    if fallbacks:
        return primary_chain.with_fallbacks(fallbacks)
    return primary_chain


def build_generator(
    role: str,
    settings: Settings | None = None,
    eval_settings: EvalSettings | None = None,
) -> LLMTextGenerator:
    """Build the ``TextGenerator`` for ``role`` with its timeout and retries.

    Roles with their own ``max_retries`` (the judge) get a single-attempt
    generator because ``JudgeEvaluator`` owns that retry loop; other roles
    retry per the shared [retry] table.
    """
    eval_settings = eval_settings or get_eval_settings()
    role_cfg = eval_settings.get_role_config(role)
    llm = create_llm(role, settings=settings, eval_settings=eval_settings)

    if hasattr(role_cfg, "max_retries"):
        max_attempts = 1
    else:
        max_attempts = eval_settings.retry.max_attempts
    initial_interval = eval_settings.retry.initial_interval

    logger.debug(
        "generator_built",
        role=role,
        model=eval_settings.get_model(role),
        timeout=role_cfg.timeout,
        max_attempts=max_attempts,
    )
    return LLMTextGenerator(
        llm,
        timeout=role_cfg.timeout,
        max_attempts=max_attempts,
        initial_interval=initial_interval,
        backoff_factor=eval_settings.retry.backoff_factor,
    )
