"""
OpenTelemetry tracing for the alert engine.

Each monitoring pass runs inside an ``alerts.tick`` span carrying the
number of evaluated thresholds and breaches, and every HTTP request gets a
server span from the API middleware. Tracing is opt-in
(``TRACING_ENABLED``); until ``setup_tracing`` runs, ``get_tracer`` hands
out OpenTelemetry's no-op tracer and ``traced`` costs next to nothing.

Usage:
    from src.observability.tracing import setup_tracing, get_tracer, traced

    setup_tracing("metric-alerts", "http://localhost:4317", sample_ratio=0.25)
    tracer = get_tracer("src.alerts.engine")

    with traced(tracer, "alerts.tick", {"alerts.thresholds": 12}) as span:
        ...
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import StatusCode, Tracer
from opentelemetry.trace.propagation import get_current_span

logger = logging.getLogger(__name__)

_provider: TracerProvider | None = None


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    sample_ratio: float = 1.0,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a global TracerProvider.

    Spans go to an OTLP gRPC collector in batches unless ``exporter`` is
    given, in which case they are exported synchronously (tests pass an
    ``InMemorySpanExporter``).

    Args:
        service_name: ``service.name`` resource attribute.
        otlp_endpoint: Collector endpoint, default ``http://localhost:4317``.
        sample_ratio: Fraction of new traces to record; child spans follow
            their parent's decision.
        exporter: Optional exporter replacing OTLP.
    """
    global _provider

    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name}),
        sampler=ParentBased(TraceIdRatioBased(sample_ratio)),
    )

    if exporter is None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        exporter = OTLPSpanExporter(
            endpoint=otlp_endpoint or "http://localhost:4317",
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    _provider = provider
    logger.info(
        "OpenTelemetry tracing initialized: service=%s endpoint=%s sample_ratio=%s",
        service_name,
        otlp_endpoint or "(custom exporter)",
        sample_ratio,
    )
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans. Safe to call when tracing was never set up."""
    if _provider is not None:
        _provider.force_flush()
        _provider.shutdown()


def get_tracer(name: str) -> Tracer:
    """Named tracer from the global provider (no-op until setup)."""
    return trace.get_tracer(name)


def is_tracing_enabled() -> bool:
    return _provider is not None


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
):
    """
    Run the block inside a span, marking it as errored on exceptions.

    The exception is recorded on the span and re-raised.
    """
    with tracer.start_as_current_span(
        name,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as exc:
            span.set_status(StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor adding the active span's trace_id and span_id."""
    ctx = get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = f"{ctx.trace_id:032x}"
        event_dict["span_id"] = f"{ctx.span_id:016x}"
    return event_dict
