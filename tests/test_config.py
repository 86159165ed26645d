"""Tests for evaluation configuration loading from evals.toml."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from coach_evals.config import (
    EVALS_TOML_PATH,
    EvalSettings,
    Settings,
    load_eval_settings,
    resolve_judge_enabled,
)


class TestEvalSettingsDefaults:
    def test_role_defaults(self):
        s = EvalSettings()
        assert s.roles.coach.temperature == 0.8
        assert s.roles.coach.max_tokens == 500
        assert s.roles.coach.timeout == 30
        assert s.roles.judge.temperature == 0.1
        assert s.roles.judge.max_tokens == 250
        assert s.roles.judge.timeout == 25
        assert s.roles.judge.max_retries == 1
        assert s.roles.judge.retry_base_delay == 0.8

    def test_default_model(self):
        s = EvalSettings()
        assert s.get_model("coach") == "mistralai/mistral-7b-instruct"
        assert s.get_model("judge") == "mistralai/mistral-7b-instruct"

    def test_retry_and_runner_defaults(self):
        s = EvalSettings()
        assert (s.retry.max_attempts, s.retry.initial_interval, s.retry.backoff_factor) == (3, 1.0, 2.0)
        assert s.runner.max_concurrency == 1
        assert s.runner.default_prompt_version == "v3-structured-json"
        assert s.judge.enabled is False

    def test_providers_disabled(self):
        s = EvalSettings()
        assert s.providers.groq.enabled is False
        assert s.providers.ollama.enabled is False


class TestEvalSettingsOverrides:
    def test_role_model_override(self):
        s = EvalSettings.model_validate({"roles": {"judge": {"model": "other/model"}}})
        assert s.get_model("judge") == "other/model"
        assert s.get_model("coach") == "mistralai/mistral-7b-instruct"

    def test_unknown_role_uses_generic_defaults(self):
        s = EvalSettings()
        assert s.get_temperature("summarizer") == 0.7
        assert s.get_role_config("summarizer").timeout == 30

    def test_provider_model_resolution(self):
        s = EvalSettings.model_validate(
            {
                "roles": {"judge": {"groq_model": "llama-3.3-70b-versatile"}},
                "providers": {"groq": {"default_model": "llama-3.1-8b-instant"}},
            }
        )
        assert s.get_groq_model("judge") == "llama-3.3-70b-versatile"
        assert s.get_groq_model("coach") == "llama-3.1-8b-instant"

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            EvalSettings.model_validate({"runner": {"max_concurrency": 0}})


class TestTomlFile:
    def test_repo_toml_parses(self):
        with open(EVALS_TOML_PATH, "rb") as f:
            data = tomllib.load(f)
        s = EvalSettings.model_validate(data)
        assert s.get_model("judge") == "meta-llama/llama-3.1-8b-instruct"
        assert s.roles.judge.timeout == 25

    def test_missing_file_yields_defaults(self, tmp_path: Path):
        assert load_eval_settings(tmp_path / "nope.toml") == EvalSettings()

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "evals.toml"
        path.write_text("[judge]\nenabled = true\n\n[runner]\nmax_concurrency = 4\n", encoding="utf-8")
        s = load_eval_settings(path)
        assert s.judge.enabled is True
        assert s.runner.max_concurrency == 4


class TestJudgeSwitch:
    def test_env_overrides_toml(self):
        toml_on = EvalSettings.model_validate({"judge": {"enabled": True}})
        assert resolve_judge_enabled(Settings(judge_enabled=False), toml_on) is False
        assert resolve_judge_enabled(Settings(judge_enabled=True), EvalSettings()) is True

    def test_toml_used_when_env_unset(self):
        toml_on = EvalSettings.model_validate({"judge": {"enabled": True}})
        assert resolve_judge_enabled(Settings(judge_enabled=None), toml_on) is True
        assert resolve_judge_enabled(Settings(judge_enabled=None), EvalSettings()) is False

    def test_env_variable_parsed(self, monkeypatch):
        monkeypatch.setenv("JUDGE_ENABLED", "true")
        assert Settings().judge_enabled is True
