"""VPS Template - Configuration

All settings loaded from environment variables (and a local .env file).
IMAGE_TAG: version string shown on the welcome page and health check
LOG_PATH / LOG_LEVEL / CONSOLE_LOG_LEVEL: log destinations
OTEL_ENDPOINT: OTLP/HTTP collector, tracing is skipped when unset
"""
import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()

DEFAULT_LOG_PATH = "/tmp/app.log"

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def _env(name: str, default: str = ""):
    # Read at construction time, not import time, so tests can patch the environment.
    return Field(default_factory=lambda: os.getenv(name) or default)


def parse_level(name: str) -> int:
    """Map a level name such as "info" or "WARN" to its stdlib logging number."""
    key = name.strip().upper()
    key = _LEVEL_ALIASES.get(key, key)
    level = logging.getLevelName(key)
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {name!r}")
    return level


class LoggingConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    path: str = _env("LOG_PATH", DEFAULT_LOG_PATH)
    level: str = _env("LOG_LEVEL", "INFO")
    console_level: str = _env("CONSOLE_LOG_LEVEL", "INFO")

    @field_validator("level", "console_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        parse_level(v)
        return _LEVEL_ALIASES.get(v.strip().upper(), v.strip().upper())


class TracingConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    endpoint: str = _env("OTEL_ENDPOINT")
    service_name: str = _env("OTEL_SERVICE_NAME", "vps-template-example")

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint)


class ServerConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    host: str = _env("HOST", "0.0.0.0")
    port: int = Field(default_factory=lambda: os.getenv("PORT") or "3000", ge=0, le=65535)
    shutdown_timeout: float = Field(
        default_factory=lambda: os.getenv("SHUTDOWN_TIMEOUT") or "30", gt=0
    )


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    image_tag: str = Field(default_factory=lambda: os.getenv("IMAGE_TAG", ""))
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def get_config() -> AppConfig:
    return AppConfig()
