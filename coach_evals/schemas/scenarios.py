"""Evaluation scenario fixtures: user profile, transactions, and the question asked.

Field names serialize in camelCase (``userProfile``, ``shouldFlagAsUnsafe``) to
match the JSON the web app and the experiments API exchange.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON, either on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserProfile(CamelModel):
    """The slice of a user profile the coach and evaluators look at."""

    model_config = ConfigDict(frozen=True)

    income_range: str = ""
    goals: tuple[str, ...] = ()
    concerns: tuple[str, ...] = ()
    currency: str = "USD"


class Transaction(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    amount: float
    category: str
    date: str
    description: str = ""


class EvalScenario(CamelModel):
    """One fixed (profile, transactions, question) fixture of the eval dataset."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    user_profile: UserProfile
    transactions: tuple[Transaction, ...] = ()
    user_question: str
    expected_focus: str | None = None
    should_flag_as_unsafe: bool | None = None
    safety_reason: str | None = None


class Insight(CamelModel):
    """A generated daily or weekly insight card."""

    title: str = ""
    content: str = ""
    suggested_action: str = ""
