"""
Unit tests for configuration loading and validation.

Tests defaults, strict validation and LOGO_* environment overrides.
"""

import os
import shutil
import tempfile

import pytest
import yaml

from ticker_logos.config.loader import (
    DEFAULT_MODELS,
    DEFAULT_REPOS,
    AppConfig,
    LLMConfig,
    load_config,
)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_defaults_without_file(self, monkeypatch):
        monkeypatch.chdir(self.temp_dir)

        config = load_config(environ={})

        assert config == AppConfig()
        assert config.storage.database_path == "./storage/logo-service.db"
        assert config.storage.logo_dir == "./storage/logos"
        assert config.github.repos == DEFAULT_REPOS
        assert config.llm.provider_order == ("anthropic", "openai")
        assert config.llm.rate_per_minute == 10.0
        assert config.llm.anthropic.model == DEFAULT_MODELS["anthropic"]
        assert config.llm.openai.model == "gpt-4o"
        assert config.llm.anthropic.api_key == ""
        assert config.log.level == "info"

    def test_default_file_in_working_directory(self, monkeypatch):
        self._write_config({"log": {"level": "debug"}})
        monkeypatch.chdir(self.temp_dir)

        config = load_config(environ={})

        assert config.log.level == "debug"

    def test_valid_config_loads_correctly(self):
        config_path = self._write_config({
            "storage": {"database_path": "/data/logos.db", "logo_dir": "/data/logos"},
            "github": {"repos": ["org/icons"], "token": "ghp_x"},
            "llm": {
                "provider_order": ["openai"],
                "rate_per_minute": 2,
                "openai": {"api_key": "sk-openai", "model": "gpt-4.1"},
            },
            "log": {"level": "WARNING"},
        })

        config = load_config(config_path, environ={})

        assert config.storage.database_path == "/data/logos.db"
        assert config.github.repos == ("org/icons",)
        assert config.github.token == "ghp_x"
        assert config.llm.provider_order == ("openai",)
        assert config.llm.rate_per_minute == 2.0
        assert config.llm.provider("openai").api_key == "sk-openai"
        assert config.llm.openai.model == "gpt-4.1"
        assert config.llm.anthropic.model == DEFAULT_MODELS["anthropic"]
        assert config.log.level == "warning"

    def test_empty_file_uses_defaults(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, "w").close()

        assert load_config(config_path, environ={}) == AppConfig()

    def test_missing_explicit_file(self):
        with pytest.raises(FileNotFoundError):
            load_config(os.path.join(self.temp_dir, "nope.yaml"), environ={})

    def test_invalid_yaml(self):
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("storage: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_config(config_path, environ={})

    @pytest.mark.parametrize("config_data,match", [
        ({"server": {"port": 8080}}, "Unknown configuration keys"),
        ({"storage": {"path": "x"}}, "Unknown storage keys"),
        ({"llm": {"anthropic": {"key": "x"}}}, "Unknown keys in llm.anthropic"),
        ({"llm": {"provider_order": ["anthropic", "gemini"]}}, "provider_order"),
        ({"llm": {"rate_per_minute": 0}}, "rate_per_minute must be > 0"),
        ({"llm": {"rate_per_minute": "fast"}}, "rate_per_minute must be a number"),
        ({"log": {"level": "verbose"}}, "log.level"),
        ({"storage": {"logo_dir": ""}}, "logo_dir must not be empty"),
        ({"github": {"repos": ["not-a-repo"]}}, "owner/name"),
        ({"github": "org/icons"}, "'github' must be a dictionary"),
    ])
    def test_invalid_configs(self, config_data, match):
        config_path = self._write_config(config_data)

        with pytest.raises(ValueError, match=match):
            load_config(config_path, environ={})

    def test_env_overrides(self):
        config_path = self._write_config({"llm": {"rate_per_minute": 5}})
        environ = {
            "LOGO_STORAGE_LOGO_DIR": "/tmp/logos",
            "LOGO_GITHUB_REPOS": "a/one, b/two",
            "LOGO_LLM_PROVIDER_ORDER": "OpenAI,anthropic",
            "LOGO_LLM_RATE_PER_MINUTE": "30",
            "LOGO_LLM_ANTHROPIC_API_KEY": "sk-ant",
            "LOGO_LLM_OPENAI_MODEL": "gpt-4o-mini",
            "LOGO_LOG_LEVEL": "error",
        }

        config = load_config(config_path, environ=environ)

        assert config.storage.logo_dir == "/tmp/logos"
        assert config.github.repos == ("a/one", "b/two")
        assert config.llm.provider_order == ("openai", "anthropic")
        assert config.llm.rate_per_minute == 30.0
        assert config.llm.anthropic.api_key == "sk-ant"
        assert config.llm.openai.model == "gpt-4o-mini"
        assert config.log.level == "error"

    def test_vendor_api_key_fallback(self):
        config_path = self._write_config({"llm": {"anthropic": {"api_key": "from-file"}}})
        environ = {"ANTHROPIC_API_KEY": "from-env", "OPENAI_API_KEY": "openai-env"}

        config = load_config(config_path, environ=environ)

        assert config.llm.anthropic.api_key == "from-file"
        assert config.llm.openai.api_key == "openai-env"


class TestConfigValidation:
    def test_llm_config_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            LLMConfig(rate_per_minute=-1)
