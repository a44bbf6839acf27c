"""VPS Template - Entry Point

Starts:
  1. Structured logger (JSON file at LOG_PATH + console)
  2. OpenTelemetry tracer (only when OTEL_ENDPOINT is set)
  3. HTTP server on :3000 until SIGINT/SIGTERM, then graceful shutdown

Exit code 0 on clean shutdown, 1 on any startup or listener failure.
"""
import sys

from vps_template.core.config import get_config
from vps_template.core.context import AppContext
from vps_template.core.errors import LoggerInitError, TracingInitError
from vps_template.core.logger import bridge_stdlib, get_logger, init_logger, unbridge_stdlib
from vps_template.core.tracing import init_tracing
from vps_template.gateway import create_app
from vps_template.lifecycle import LifecycleManager


def main():
    config = get_config()

    try:
        sink = init_logger(config.logging)
    except LoggerInitError as e:
        print(f"Failed to initialize logger: {e}", file=sys.stderr)
        sys.exit(1)

    log = get_logger(sink)
    log.info("application_starting", version=config.image_tag)
    bridge = bridge_stdlib(sink)

    try:
        tracing = init_tracing(config, log)
    except TracingInitError as e:
        log.error("tracing_init_failed", error=str(e))
        unbridge_stdlib(bridge)
        sink.close()
        sys.exit(1)

    ctx = AppContext(config=config, sink=sink, tracing=tracing, log=log)
    manager = LifecycleManager(create_app(ctx), ctx)
    try:
        code = manager.run()
    finally:
        unbridge_stdlib(bridge)
        ctx.close()
    sys.exit(code)


if __name__ == "__main__":
    main()
