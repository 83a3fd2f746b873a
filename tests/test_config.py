"""Tests for configuration loading."""

import os

import pytest
from pydantic import ValidationError

from workflow_engine.config import (
    AppConfig,
    LogLevel,
    get_config,
    get_testing_config,
    load_config,
    reset_config,
    validate_config,
)
from workflow_engine.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    for key in ("MAX_RETRIES", "RETRY_DELAY", "NODE_TIMEOUT", "PARALLEL_EXECUTION", "PORT", "LOG_LEVEL"):
        monkeypatch.delenv(f"WORKFLOW_ENGINE_{key}", raising=False)
    reset_config()
    yield
    reset_config()


class TestAppConfig:

    def test_defaults_match_engine_defaults(self):
        options = AppConfig().execution_options()

        assert options.max_retries == 3
        assert options.retry_delay == 1.0
        assert options.node_timeout == 300.0
        assert options.parallel is False

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_ENGINE_MAX_RETRIES", "5")
        monkeypatch.setenv("WORKFLOW_ENGINE_NODE_TIMEOUT", "12.5")
        monkeypatch.setenv("WORKFLOW_ENGINE_PARALLEL_EXECUTION", "yes")
        monkeypatch.setenv("WORKFLOW_ENGINE_LOG_LEVEL", "debug")

        config = AppConfig.from_env()

        assert config.max_retries == 5
        assert config.node_timeout == 12.5
        assert config.parallel_execution is True
        assert config.log_level == LogLevel.DEBUG

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_ENGINE_PORT", "eighty")

        with pytest.raises(ConfigurationError):
            AppConfig.from_env()

    def test_field_validation(self):
        with pytest.raises(ValidationError):
            AppConfig(port=70000)
        with pytest.raises(ValidationError):
            AppConfig(max_retries=-1)
        with pytest.raises(ValidationError):
            AppConfig(node_timeout=0)

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_load_config_from_dotenv(self, tmp_path):
        env_file = tmp_path / "engine.env"
        env_file.write_text("WORKFLOW_ENGINE_RETRY_DELAY=0.25\n")

        try:
            config = load_config(str(env_file))
        finally:
            os.environ.pop("WORKFLOW_ENGINE_RETRY_DELAY", None)

        assert config.retry_delay == 0.25
        assert get_config() is config

    def test_missing_config_file(self):
        with pytest.raises(ConfigurationError):
            load_config("/nonexistent/engine.env")

    def test_testing_preset(self):
        config = get_testing_config()

        assert config.retry_delay == 0.0
        validate_config(config)

    def test_validate_creates_log_directory(self, tmp_path):
        config = AppConfig(log_file=str(tmp_path / "logs" / "engine.log"))

        validate_config(config)

        assert (tmp_path / "logs").is_dir()
