"""VPS Template - Logger

Builds the process-wide structured logger:
  JSON lines  -> LOG_PATH (directory created if absent)
  text lines  -> stdout
Both destinations sit behind one FanoutSink. structlog is the front end;
nothing here touches structlog's global configuration, the bound logger is
handed to whoever needs it.
"""
import logging
import os
import sys
import traceback
from datetime import datetime

import structlog
from opentelemetry import trace

from vps_template.core.config import LoggingConfig, parse_level
from vps_template.core.errors import LoggerInitError
from vps_template.core.logsink import ConsoleDestination, FanoutSink, JSONFileDestination, LogRecord

# structlog method name -> stdlib level number
_METHOD_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "msg": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "exception": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


def init_logger(config: LoggingConfig, stdout=None) -> FanoutSink:
    """Open the log file and build the file + console sink."""
    log_dir = os.path.dirname(config.path)
    if log_dir:
        try:
            os.makedirs(log_dir, mode=0o755, exist_ok=True)
        except OSError as e:
            raise LoggerInitError(f"failed to create log directory: {e}") from e
    try:
        file_dest = JSONFileDestination.open(config.path, parse_level(config.level))
    except OSError as e:
        raise LoggerInitError(f"failed to open log file: {e}") from e
    console_dest = ConsoleDestination(stdout or sys.stdout, parse_level(config.console_level))
    return FanoutSink([file_dest, console_dest])


class SinkLogger:
    """structlog "logger" that forwards finished LogRecords to a sink.

    A failing destination is reported on stderr; a log call never raises
    into the code that made it.
    """

    def __init__(self, sink: FanoutSink):
        self._sink = sink

    @property
    def sink(self) -> FanoutSink:
        return self._sink

    def msg(self, record: LogRecord) -> None:
        try:
            self._sink.handle(record)
        except Exception:
            sys.stderr.write("--- log sink error ---\n")
            traceback.print_exc(file=sys.stderr)

    debug = info = warn = warning = error = exception = critical = fatal = log = msg


def _drop_disabled(sink: FanoutSink):
    def processor(logger, method_name, event_dict):
        if not sink.is_enabled(_METHOD_LEVELS.get(method_name, logging.INFO)):
            raise structlog.DropEvent
        return event_dict

    return processor


def add_trace_context(logger, method_name, event_dict):
    """Correlate log lines with the active span, if any."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict.setdefault("trace_id", format(span_context.trace_id, "032x"))
        event_dict.setdefault("span_id", format(span_context.span_id, "016x"))
    return event_dict


def to_record(logger, method_name, event_dict):
    message = str(event_dict.pop("event", ""))
    record = LogRecord(
        time=datetime.now().astimezone(),
        level=_METHOD_LEVELS.get(method_name, logging.INFO),
        message=message,
        attributes=event_dict,
    )
    return (record,), {}


def get_logger(sink: FanoutSink, **initial_values):
    return structlog.wrap_logger(
        SinkLogger(sink),
        processors=[
            _drop_disabled(sink),
            add_trace_context,
            structlog.processors.format_exc_info,
            to_record,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        **initial_values,
    )


class SinkHandler(logging.Handler):
    """stdlib logging handler feeding the same sink (used for uvicorn's loggers)."""

    def __init__(self, sink: FanoutSink, level: int = logging.NOTSET):
        super().__init__(level)
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        if not self._sink.is_enabled(record.levelno):
            return
        attributes = {"logger": record.name}
        if record.exc_info:
            attributes["exception"] = "".join(traceback.format_exception(*record.exc_info))
        try:
            self._sink.handle(
                LogRecord(
                    time=datetime.fromtimestamp(record.created).astimezone(),
                    level=record.levelno,
                    message=record.getMessage(),
                    attributes=attributes,
                )
            )
        except Exception:
            self.handleError(record)


def bridge_stdlib(sink: FanoutSink, names=("uvicorn", "uvicorn.error")) -> SinkHandler:
    handler = SinkHandler(sink)
    for name in names:
        std_logger = logging.getLogger(name)
        std_logger.addHandler(handler)
        std_logger.setLevel(logging.INFO)
        std_logger.propagate = False
    return handler


def unbridge_stdlib(handler: SinkHandler, names=("uvicorn", "uvicorn.error")) -> None:
    for name in names:
        std_logger = logging.getLogger(name)
        std_logger.removeHandler(handler)
        std_logger.propagate = True
