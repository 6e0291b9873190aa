"""Tests for the AI configuration snapshot built from the environment."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from calendar_intel import config
from calendar_intel.config import (
    DEFAULT_OLLAMA_HOST,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    expand_env_var,
    load_ai_config,
)

AI_VARS = (
    "AI_DEFAULT_PROVIDER", "AI_FALLBACK_ENABLED", "AI_FALLBACK_PROVIDERS", "AI_REQUEST_TIMEOUT",
    "OLLAMA_HOST", "OLLAMA_MODEL", "CLAUDE_API_KEY", "ANTHROPIC_API_KEY", "CLAUDE_MODEL",
    "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_BASE_URL", "GROQ_API_KEY", "GROQ_MODEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in AI_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadAIConfig:
    def test_empty_environment_configures_nothing(self):
        ai = load_ai_config()
        assert ai.default_provider == ""
        assert (ai.fallback, ai.ollama, ai.claude, ai.openai, ai.groq) == (None,) * 5
        assert ai.request_timeout == DEFAULT_REQUEST_TIMEOUT_SECONDS

    def test_ollama_model_alone_enables_section_with_default_host(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_MODEL", "qwen2.5")
        ai = load_ai_config()
        assert (ai.ollama.host, ai.ollama.model) == (DEFAULT_OLLAMA_HOST, "qwen2.5")

    def test_anthropic_key_is_accepted_for_claude(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        assert load_ai_config().claude.api_key == "sk-ant"

    def test_key_reference_is_expanded(self, monkeypatch):
        monkeypatch.setenv("GROQ_SECRET", "gsk-123")
        monkeypatch.setenv("GROQ_API_KEY", "${GROQ_SECRET}")
        assert load_ai_config().groq.api_key == "gsk-123"

    def test_fallback_chain_parsed_and_enabled_by_default(self, monkeypatch):
        monkeypatch.setenv("AI_FALLBACK_PROVIDERS", " groq, ollama ,,")
        fallback = load_ai_config().fallback
        assert fallback.enabled is True
        assert fallback.providers == ["groq", "ollama"]

    def test_fallback_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("AI_FALLBACK_ENABLED", "false")
        monkeypatch.setenv("AI_FALLBACK_PROVIDERS", "groq")
        assert load_ai_config().fallback.enabled is False

    def test_openai_base_url_and_timeout(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk")
        monkeypatch.setenv("OPENAI_BASE_URL", "http://proxy.local/v1")
        monkeypatch.setenv("AI_REQUEST_TIMEOUT", "15")
        ai = load_ai_config()
        assert ai.openai.base_url == "http://proxy.local/v1"
        assert ai.request_timeout == 15.0

    def test_snapshot_is_immutable(self):
        with pytest.raises(ValueError):
            load_ai_config().default_provider = "claude"


class TestExpandEnvVar:
    def test_plain_value_unchanged(self):
        assert expand_env_var("sk-plain") == "sk-plain"

    def test_unset_reference_is_empty(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert expand_env_var("${NOT_SET_ANYWHERE}") == ""


class TestRequireEnv:
    def test_placeholder_value_is_rejected(self, monkeypatch):
        monkeypatch.setenv("SOME_SECRET", "your_key_here")
        with patch.object(config, "_ON_AWS", False), pytest.raises(OSError, match="SOME_SECRET"):
            config._require_env("SOME_SECRET")

    def test_ssm_is_consulted_on_aws(self, monkeypatch):
        monkeypatch.delenv("SOME_SECRET", raising=False)
        with patch.object(config, "_ON_AWS", True), \
                patch.object(config, "_get_ssm_parameter", return_value="from-ssm") as mock_ssm:
            assert config._require_env("SOME_SECRET") == "from-ssm"
        mock_ssm.assert_called_once_with("SOME_SECRET")
