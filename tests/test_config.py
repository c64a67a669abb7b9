"""Tests for configuration loading."""

import pytest

from shared.config import LLMSettings, Settings, get_settings, load_yaml_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OPENAI_MODEL", "OPENAI_API_KEY", "LLM_MODEL", "LLM_API_KEY", "LLM_PROVIDER"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for Settings defaults, env overrides and YAML loading."""

    def test_defaults(self):
        settings = Settings()

        assert settings.llm.model == "gpt-4o-mini"
        assert settings.mcp.client_name == "customer-support-chatbot"
        assert settings.mcp.client_version == "1.0.0"
        assert settings.orchestrator.max_iterations == 5
        assert settings.orchestrator.max_knowledge_resources == 3
        assert settings.orchestrator.resource_excerpt_chars == 1000
        assert settings.orchestrator.max_history is None

    def test_openai_env_names(self, monkeypatch):
        """Test that the conventional OpenAI variable names are honored."""
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        settings = LLMSettings()

        assert settings.model == "gpt-4o"
        assert settings.api_key == "sk-test"

    def test_prefixed_env_wins(self, monkeypatch):
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
        monkeypatch.setenv("LLM_MODEL", "gpt-4.1")

        assert LLMSettings().model == "gpt-4.1"

    def test_from_yaml(self, tmp_path):
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(
            "environment: production\n"
            "llm:\n"
            "  provider: mock\n"
            "  model: gpt-4o\n"
            "mcp:\n"
            "  server_url: http://support-mcp:3001/mcp\n"
            "orchestrator:\n"
            "  max_iterations: 3\n"
        )

        settings = Settings.from_yaml(config_file)

        assert settings.environment == "production"
        assert settings.llm.provider == "mock"
        assert settings.llm.model == "gpt-4o"
        assert settings.mcp.server_url == "http://support-mcp:3001/mcp"
        assert settings.orchestrator.max_iterations == 3

    def test_missing_yaml_is_empty(self, tmp_path):
        assert load_yaml_config(tmp_path / "missing.yaml") == {}

    def test_get_settings_reads_config_path(self, tmp_path, monkeypatch):
        config_file = tmp_path / "agent.yaml"
        config_file.write_text("log_level: DEBUG\n")
        monkeypatch.setenv("AGENT_CONFIG_PATH", str(config_file))

        settings = get_settings()

        assert settings.log_level == "DEBUG"
        assert get_settings() is settings
