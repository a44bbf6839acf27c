"""Tests for optional OpenTelemetry setup."""
import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from vps_template.core.config import AppConfig
from vps_template.core.errors import TracingInitError
from vps_template.core.logger import get_logger
from vps_template.core.tracing import Tracing, init_tracing, traces_url


@pytest.mark.parametrize("endpoint, expected", [
    ("collector:4318", "http://collector:4318/v1/traces"),
    ("localhost:4318/", "http://localhost:4318/v1/traces"),
    ("http://otel:4318", "http://otel:4318/v1/traces"),
    ("https://otel.example.com/custom/path", "https://otel.example.com/custom/path"),
])
def test_traces_url(endpoint, expected):
    assert traces_url(endpoint) == expected


@pytest.mark.parametrize("endpoint", ["collector:notaport", "ftp://collector:21", "http://:4318"])
def test_traces_url_rejects_malformed(endpoint):
    with pytest.raises(ValueError):
        traces_url(endpoint)


def test_disabled_without_endpoint(clean_env, capture):
    tracing = init_tracing(AppConfig(), get_logger(capture.sink))

    assert tracing.enabled is False
    assert isinstance(tracing.tracer, trace.NoOpTracer)
    record = capture.find("tracing_skipped")
    assert record["level"] == "WARNING"

    with tracing.start_span("handle_root") as span:
        assert not span.get_span_context().is_valid
    tracing.shutdown()


def test_malformed_endpoint_is_fatal(clean_env, capture):
    clean_env.setenv("OTEL_ENDPOINT", "collector:notaport")
    with pytest.raises(TracingInitError, match="trace exporter"):
        init_tracing(AppConfig(), get_logger(capture.sink))


def test_enabled_exports_spans_with_service_resource(clean_env, capture):
    clean_env.setenv("OTEL_ENDPOINT", "collector:4318")
    clean_env.setenv("IMAGE_TAG", "v1.2.3")
    exporter = InMemorySpanExporter()

    tracing = init_tracing(AppConfig(), get_logger(capture.sink), exporter=exporter)
    try:
        with tracing.start_span("handle_health"):
            pass
        tracing.provider.force_flush()
    finally:
        tracing.shutdown()

    assert tracing.enabled is True
    spans = exporter.get_finished_spans()
    assert [s.name for s in spans] == ["handle_health"]
    assert spans[0].kind == trace.SpanKind.SERVER
    assert spans[0].resource.attributes["service.name"] == "vps-template-example"
    assert spans[0].resource.attributes["service.version"] == "v1.2.3"
    assert capture.find("tracing_initialized")["endpoint"] == "http://collector:4318/v1/traces"


def test_span_continues_incoming_trace(clean_env, capture):
    clean_env.setenv("OTEL_ENDPOINT", "collector:4318")
    exporter = InMemorySpanExporter()
    tracing = init_tracing(AppConfig(), get_logger(capture.sink), exporter=exporter)
    trace_id = "4bf92f3577b34da6a3ce929d0e0e4736"
    headers = {"traceparent": f"00-{trace_id}-00f067aa0ba902b7-01"}
    try:
        with tracing.start_span("handle_root", headers):
            pass
        tracing.provider.force_flush()
    finally:
        tracing.shutdown()

    span = exporter.get_finished_spans()[0]
    assert format(span.context.trace_id, "032x") == trace_id
    assert format(span.parent.span_id, "016x") == "00f067aa0ba902b7"


def test_disabled_factory():
    tracing = Tracing.disabled()
    assert tracing.provider is None
    assert tracing.enabled is False
