"""VPS Template - Tracing

Optional OpenTelemetry setup. OTEL_ENDPOINT unset -> NoOpTracer, every span
call becomes a no-op and nothing is exported. Otherwise spans are batched and
pushed over OTLP/HTTP (plain http, like a sidecar collector on the same host).
"""
from contextlib import contextmanager
from typing import Mapping, Optional
from urllib.parse import urlsplit

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from vps_template.core.config import AppConfig
from vps_template.core.errors import TracingInitError

TRACES_PATH = "/v1/traces"


class Tracing:
    """Tracer plus the provider that owns its exporter (None when disabled)."""

    def __init__(self, tracer: trace.Tracer, provider: Optional[TracerProvider] = None):
        self.tracer = tracer
        self.provider = provider
        self.propagator = TraceContextTextMapPropagator()

    @classmethod
    def disabled(cls) -> "Tracing":
        return cls(trace.NoOpTracer())

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    @contextmanager
    def start_span(self, name: str, headers: Optional[Mapping[str, str]] = None, **attributes):
        parent = self.propagator.extract(dict(headers or {}))
        with self.tracer.start_as_current_span(
            name, context=parent, kind=trace.SpanKind.SERVER, attributes=attributes or None
        ) as span:
            yield span

    def shutdown(self):
        if self.provider is not None:
            self.provider.shutdown()


def traces_url(endpoint: str) -> str:
    """Turn "collector:4318" (or a full URL) into the OTLP/HTTP traces URL."""
    url = endpoint.strip()
    if "://" not in url:
        url = f"http://{url}"
    parts = urlsplit(url)
    # .port raises ValueError for a malformed port
    if parts.scheme not in ("http", "https") or not parts.hostname or parts.port == 0:
        raise ValueError(f"invalid OTLP endpoint: {endpoint!r}")
    if parts.path in ("", "/"):
        url = url.rstrip("/") + TRACES_PATH
    return url


def init_tracing(config: AppConfig, log, exporter=None) -> Tracing:
    if not config.tracing.enabled:
        log.warning("tracing_skipped", reason="OTEL_ENDPOINT not set")
        return Tracing.disabled()

    try:
        url = traces_url(config.tracing.endpoint)
        provider = TracerProvider(
            resource=Resource.create({
                SERVICE_NAME: config.tracing.service_name,
                SERVICE_VERSION: config.image_tag,
            })
        )
        provider.add_span_processor(BatchSpanProcessor(exporter or OTLPSpanExporter(endpoint=url)))
    except Exception as e:
        raise TracingInitError(f"failed to create trace exporter: {e}") from e

    log.info("tracing_initialized", endpoint=url, service=config.tracing.service_name)
    return Tracing(provider.get_tracer(config.tracing.service_name), provider)
