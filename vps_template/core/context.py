"""VPS Template - Application context

Built once at startup and passed to the gateway and the lifecycle manager,
instead of module-level logger/tracer globals.
"""
from dataclasses import dataclass, field
from typing import Any

from vps_template.core.config import AppConfig
from vps_template.core.logger import get_logger
from vps_template.core.logsink import FanoutSink
from vps_template.core.tracing import Tracing


@dataclass
class AppContext:
    config: AppConfig
    sink: FanoutSink
    tracing: Tracing = field(default_factory=Tracing.disabled)
    log: Any = None

    def __post_init__(self):
        if self.log is None:
            self.log = get_logger(self.sink)

    def close(self):
        """Flush spans first so the exporter can still log, then close log files."""
        self.tracing.shutdown()
        self.sink.close()
