"""LLM-as-a-Judge evaluator for coach replies.

A second model call scores the reply 0-5 on the same four dimensions as the
heuristic scorer plus a safety flag. The judge only ever augments the
heuristic evaluation: any failure (timeout, provider error, malformed or
incomplete JSON) is logged and yields ``None``.
"""

from __future__ import annotations

import asyncio

import structlog

from coach_evals.evals.heuristics import profile_terms
from coach_evals.generation import GenerationError, GenerationTimeout, TextGenerator, build_retrying
from coach_evals.prompts.templates import JUDGE_PROMPT, JUDGE_SYSTEM_PROMPT
from coach_evals.schemas.scores import JudgeEvaluationResult, JudgeScores
from coach_evals.utils.structured_output import parse_structured

logger = structlog.get_logger(__name__)

DEFAULT_JUDGE_TIMEOUT = 25.0
DEFAULT_JUDGE_MAX_RETRIES = 1
DEFAULT_JUDGE_BASE_DELAY = 0.8


def build_judge_prompt(user_question: str, ai_response: str, user_profile: object) -> str:
    """Render the 0-5 rubric for one reply."""
    return JUDGE_PROMPT.format(
        goals=", ".join(profile_terms(user_profile, "goals")),
        concerns=", ".join(profile_terms(user_profile, "concerns")),
        question=user_question,
        response=ai_response,
    )


def parse_judge_response(text: str) -> JudgeScores | None:
    """Parse the judge reply into scores, or None if it is unusable.

    The first JSON object in the reply is used (markdown fences and
    surrounding prose are tolerated). All four metrics and ``safetyFlags``
    must be present; metrics are clamped to 0-5.
    """
    return parse_structured(text, JudgeScores)


class JudgeEvaluator:
    """Scores replies with a judge model behind a timeout and a short retry."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        timeout: float = DEFAULT_JUDGE_TIMEOUT,
        max_retries: int = DEFAULT_JUDGE_MAX_RETRIES,
        base_delay: float = DEFAULT_JUDGE_BASE_DELAY,
    ) -> None:
        self.generator = generator
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def _generate_once(self, prompt: str) -> str:
        try:
            generation = await asyncio.wait_for(
                self.generator.generate(prompt, system=JUDGE_SYSTEM_PROMPT),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            raise GenerationTimeout(f"judge timed out after {self.timeout}s") from exc
        return generation.text

    async def evaluate(
        self,
        user_question: str,
        ai_response: str,
        user_profile: object,
    ) -> JudgeEvaluationResult | None:
        prompt = build_judge_prompt(user_question, ai_response, user_profile)
        try:
            retrying = build_retrying(
                max_attempts=self.max_retries + 1,
                initial_interval=self.base_delay,
                backoff_factor=2.0,
            )
            text = await retrying(self._generate_once, prompt)
        except GenerationError as exc:
            logger.warning("judge_generation_failed", error=str(exc), error_type=type(exc).__name__)
            return None
        except Exception:
            logger.error("judge_unexpected_error", exc_info=True)
            return None

        text = (text or "").strip()
        if not text:
            logger.warning("judge_empty_reply")
            return None

        scores = parse_judge_response(text)
        if scores is None:
            logger.warning("judge_unparseable_reply", preview=text[:120])
            return None

        result = JudgeEvaluationResult.from_scores(scores)
        logger.debug(
            "judge_scored",
            average_0_to_10=result.average_0_to_10,
            safety_flags=scores.safety_flags,
        )
        return result


async def run_judge_evaluation(
    generator: TextGenerator,
    user_question: str,
    ai_response: str,
    user_profile: object,
    **kwargs: float,
) -> JudgeEvaluationResult | None:
    """One-shot judge call; see ``JudgeEvaluator`` for the keyword options."""
    return await JudgeEvaluator(generator, **kwargs).evaluate(user_question, ai_response, user_profile)
