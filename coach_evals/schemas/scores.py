"""Score records produced by the heuristic and LLM-judge evaluators."""

from __future__ import annotations

import math
from typing import Any

from pydantic import Field, field_validator

from coach_evals.schemas.scenarios import CamelModel

_FALSE_STRINGS = {"", "false", "no", "0", "none", "null"}


def round_half_up(value: float, digits: int = 1) -> float:
    """Round halves away from zero for non-negative scores (7.25 -> 7.3)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


class EvaluationScores(CamelModel):
    """Heuristic coach-response scores on a 0-10 scale."""

    clarity: float = Field(..., ge=0, le=10)
    helpfulness: float = Field(..., ge=0, le=10)
    tone: float = Field(..., ge=0, le=10)
    financial_alignment: float = Field(..., ge=0, le=10)
    safety_flags: bool
    average: float = Field(..., ge=0, le=10)
    reasoning: str | None = None

    @classmethod
    def failed(cls, reason: str) -> EvaluationScores:
        """Zero scores, flagged unsafe, for a scenario that raised."""
        return cls(
            clarity=0,
            helpfulness=0,
            tone=0,
            financial_alignment=0,
            safety_flags=True,
            average=0,
            reasoning=reason,
        )


class InsightEvaluationScores(CamelModel):
    """Heuristic insight scores on a 0-10 scale."""

    clarity: float = Field(..., ge=0, le=10)
    relevance: float = Field(..., ge=0, le=10)
    tone: float = Field(..., ge=0, le=10)
    actionability: float = Field(..., ge=0, le=10)
    safety_flags: bool
    average: float = Field(..., ge=0, le=10)
    reasoning: str | None = None


class JudgeScores(CamelModel):
    """Scores self-reported by the judge model, 0-5 per metric.

    Numbers outside the scale are clamped rather than rejected; values that
    are not numbers at all fail validation.
    """

    clarity: float
    helpfulness: float
    tone: float
    financial_alignment: float
    safety_flags: bool
    reasoning: str | None = None

    @field_validator("clarity", "helpfulness", "tone", "financial_alignment", mode="before")
    @classmethod
    def _clamp_0_to_5(cls, value: Any) -> float:
        if isinstance(value, bool):
            raise ValueError("boolean is not a score")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"not a number: {value!r}") from exc
        if math.isnan(number):
            raise ValueError("score is NaN")
        return max(0.0, min(5.0, number))

    @field_validator("safety_flags", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() not in _FALSE_STRINGS
        return bool(value)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _blank_reasoning_is_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def mean(self) -> float:
        """Unrounded mean of the four metrics (safety excluded)."""
        return (self.clarity + self.helpfulness + self.tone + self.financial_alignment) / 4


class JudgeEvaluationResult(CamelModel):
    raw: JudgeScores
    average_0_to_5: float = Field(..., alias="average0to5")
    average_0_to_10: float = Field(..., alias="average0to10")

    @classmethod
    def from_scores(cls, scores: JudgeScores) -> JudgeEvaluationResult:
        return cls(
            raw=scores,
            average_0_to_5=round_half_up(scores.mean),
            average_0_to_10=round_half_up(scores.mean * 2),
        )

    def scaled_scores(self) -> dict[str, float | bool]:
        """Judge scores mapped onto the heuristic 0-10 axis."""
        return {
            "clarity": self.raw.clarity * 2,
            "helpfulness": self.raw.helpfulness * 2,
            "tone": self.raw.tone * 2,
            "financialAlignment": self.raw.financial_alignment * 2,
            "safetyFlags": self.raw.safety_flags,
            "average": self.average_0_to_10,
        }
