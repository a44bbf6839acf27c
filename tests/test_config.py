"""Tests for environment-driven configuration."""
import logging

import pytest
from pydantic import ValidationError

from vps_template.core.config import DEFAULT_LOG_PATH, AppConfig, get_config, parse_level


def test_defaults(clean_env):
    config = get_config()
    assert config.image_tag == ""
    assert config.logging.path == DEFAULT_LOG_PATH
    assert config.logging.level == "INFO"
    assert config.logging.console_level == "INFO"
    assert config.tracing.endpoint == ""
    assert config.tracing.enabled is False
    assert config.tracing.service_name == "vps-template-example"
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 3000
    assert config.server.shutdown_timeout == 30.0


def test_environment_overrides(clean_env):
    clean_env.setenv("IMAGE_TAG", "v1.2.3")
    clean_env.setenv("LOG_PATH", "/var/log/app/app.log")
    clean_env.setenv("LOG_LEVEL", "warn")
    clean_env.setenv("OTEL_ENDPOINT", "collector:4318")
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("SHUTDOWN_TIMEOUT", "2.5")

    config = AppConfig()

    assert config.image_tag == "v1.2.3"
    assert config.logging.path == "/var/log/app/app.log"
    assert config.logging.level == "WARNING"
    assert config.tracing.enabled is True
    assert config.server.port == 8080
    assert config.server.shutdown_timeout == 2.5


def test_environment_is_read_per_call(clean_env):
    first = get_config()
    clean_env.setenv("IMAGE_TAG", "v2")
    assert first.image_tag == ""
    assert get_config().image_tag == "v2"


def test_empty_log_path_falls_back_to_default(clean_env):
    clean_env.setenv("LOG_PATH", "")
    assert get_config().logging.path == DEFAULT_LOG_PATH


@pytest.mark.parametrize("name, value", [("LOG_LEVEL", "LOUD"), ("PORT", "http"), ("PORT", "70000")])
def test_invalid_values_are_rejected(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ValidationError):
        get_config()


@pytest.mark.parametrize("name, level", [
    ("debug", logging.DEBUG),
    ("INFO", logging.INFO),
    ("Warn", logging.WARNING),
    ("error", logging.ERROR),
])
def test_parse_level(name, level):
    assert parse_level(name) == level


def test_parse_level_rejects_unknown():
    with pytest.raises(ValueError):
        parse_level("chatty")
