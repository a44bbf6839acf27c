"""VPS Template - Startup errors

Raised while building the process-wide logger and tracer. Any of these is
fatal: main() reports it and exits non-zero.
"""


class StartupError(RuntimeError):
    pass


class LoggerInitError(StartupError):
    """Log directory or log file could not be created/opened."""


class TracingInitError(StartupError):
    """Trace exporter or provider could not be configured."""
