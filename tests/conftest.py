import io
import json
import logging

import pytest

from vps_template.core.config import AppConfig
from vps_template.core.context import AppContext
from vps_template.core.logsink import ConsoleDestination, FanoutSink, JSONFileDestination
from vps_template.core.tracing import Tracing

ENV_VARS = (
    "IMAGE_TAG",
    "LOG_PATH",
    "LOG_LEVEL",
    "CONSOLE_LOG_LEVEL",
    "OTEL_ENDPOINT",
    "OTEL_SERVICE_NAME",
    "HOST",
    "PORT",
    "SHUTDOWN_TIMEOUT",
)


class LogCapture:
    """A JSON and a console destination writing to in-memory streams."""

    def __init__(self, level: int = logging.DEBUG):
        self.json_stream = io.StringIO()
        self.console_stream = io.StringIO()
        self.sink = FanoutSink([
            JSONFileDestination(self.json_stream, level),
            ConsoleDestination(self.console_stream, level, colors=False),
        ])

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.json_stream.getvalue().splitlines()]

    def events(self) -> list[str]:
        return [r["msg"] for r in self.records()]

    def find(self, msg: str) -> dict:
        matches = [r for r in self.records() if r["msg"] == msg]
        assert matches, f"no {msg!r} record in {self.events()}"
        return matches[0]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def capture():
    return LogCapture()


@pytest.fixture
def make_context(capture, clean_env):
    def _make(tracing: Tracing | None = None, **env) -> AppContext:
        for name, value in env.items():
            clean_env.setenv(name, value)
        return AppContext(config=AppConfig(), sink=capture.sink, tracing=tracing or Tracing.disabled())

    return _make
