"""Application configuration using pydantic-settings.

Loads secrets and switches from environment variables and .env file.
Evaluation behavior (models, timeouts, retries, judge) loaded from evals.toml.

Priority: CLI args > Environment variables (.env) > evals.toml > hardcoded defaults
"""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Evaluation settings from evals.toml
# ---------------------------------------------------------------------------


class RoleConfig(BaseModel):
    """Base configuration for a single generation role."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    timeout: float = 30.0
    groq_model: str = ""     # Role-specific Groq model override
    ollama_model: str = ""   # Role-specific Ollama model override


class CoachRoleConfig(RoleConfig):
    """User-facing coach generation."""

    temperature: float = 0.8
    max_tokens: int = 500
    timeout: float = 30.0


class JudgeRoleConfig(RoleConfig):
    """LLM-as-judge scoring call."""

    temperature: float = 0.1
    max_tokens: int = 250
    timeout: float = 25.0
    max_retries: int = 1
    retry_base_delay: float = 0.8


class RolesTable(BaseModel):
    """The [roles] table from evals.toml."""

    coach: CoachRoleConfig = Field(default_factory=CoachRoleConfig)
    judge: JudgeRoleConfig = Field(default_factory=JudgeRoleConfig)


class DefaultsTable(BaseModel):
    """The [defaults] table from evals.toml."""

    model: str = "mistralai/mistral-7b-instruct"
    min_response_length: int = 1


class RetryConfig(BaseModel):
    """The [retry] table from evals.toml."""

    max_attempts: int = 3
    initial_interval: float = 1.0
    backoff_factor: float = 2.0


class JudgeTable(BaseModel):
    """The [judge] table from evals.toml."""

    enabled: bool = False


class RunnerTable(BaseModel):
    """The [runner] table from evals.toml."""

    max_concurrency: int = Field(default=1, ge=1)
    default_prompt_version: str = "v3-structured-json"


class ProviderConfig(BaseModel):
    """Configuration for a single fallback provider."""

    enabled: bool = False
    default_model: str = ""
    base_url: str = ""


class ProvidersTable(BaseModel):
    """The [providers] table from evals.toml."""

    groq: ProviderConfig = Field(default_factory=ProviderConfig)
    ollama: ProviderConfig = Field(default_factory=ProviderConfig)


class EvalSettings(BaseModel):
    """Configuration loaded from evals.toml."""

    defaults: DefaultsTable = Field(default_factory=DefaultsTable)
    roles: RolesTable = Field(default_factory=RolesTable)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    judge: JudgeTable = Field(default_factory=JudgeTable)
    runner: RunnerTable = Field(default_factory=RunnerTable)
    providers: ProvidersTable = Field(default_factory=ProvidersTable)

    def get_role_config(self, role: str) -> RoleConfig:
        """Get the config for a specific role."""
        return getattr(self.roles, role, RoleConfig())

    def get_model(self, role: str) -> str:
        """Get the resolved model for a role (role-specific > defaults)."""
        return self.get_role_config(role).model or self.defaults.model

    def get_temperature(self, role: str) -> float:
        """Get the resolved temperature for a role."""
        role_cfg = self.get_role_config(role)
        if role_cfg.temperature is not None:
            return role_cfg.temperature
        return 0.7  # fallback

    def get_groq_model(self, role: str) -> str:
        """Get Groq model: role-specific > providers.groq.default_model."""
        return self.get_role_config(role).groq_model or self.providers.groq.default_model

    def get_ollama_model(self, role: str) -> str:
        """Get Ollama model: role-specific > providers.ollama.default_model."""
        return self.get_role_config(role).ollama_model or self.providers.ollama.default_model


EVALS_TOML_PATH = Path(__file__).parent.parent / "evals.toml"

_EVAL_SETTINGS_CACHE: EvalSettings | None = None


def load_eval_settings(path: Path) -> EvalSettings:
    """Parse an evals.toml file. A missing file yields the defaults."""
    if not path.exists():
        return EvalSettings()
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return EvalSettings.model_validate(data)


def get_eval_settings() -> EvalSettings:
    """Load and cache evaluation settings from evals.toml."""
    global _EVAL_SETTINGS_CACHE
    if _EVAL_SETTINGS_CACHE is None:
        _EVAL_SETTINGS_CACHE = load_eval_settings(EVALS_TOML_PATH)
    return _EVAL_SETTINGS_CACHE


# ---------------------------------------------------------------------------
# Environment settings from .env (API keys, secrets, env-var overrides)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Keys
    openrouter_api_key: str = ""
    groq_api_key: str = ""  # Optional, Groq fallback provider

    # OpenRouter base URL
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # LangSmith trace sink (traces are only logged locally without a key)
    langchain_api_key: str | None = None
    langchain_project: str = "coach-evals"

    # Overrides [judge].enabled from evals.toml when set
    judge_enabled: bool | None = None

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()


def resolve_judge_enabled(
    settings: Settings | None = None,
    eval_settings: EvalSettings | None = None,
) -> bool:
    """Resolve the judge flag: environment > evals.toml."""
    settings = settings or get_settings()
    if settings.judge_enabled is not None:
        return settings.judge_enabled
    eval_settings = eval_settings or get_eval_settings()
    return eval_settings.judge.enabled
