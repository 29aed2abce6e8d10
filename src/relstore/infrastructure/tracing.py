"""OpenTelemetry tracing for relstore.

Spans wrap the operations that hold the write scope or run a whole plan:
``transaction.commit``, ``view.refresh`` and ``query.explain_analyze``.
An error escaping a span marks it failed and records the error
class. A constraint violation, raised directly or as the cause of an
aborted commit, also records its constraint kind.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import Status, StatusCode

from relstore.domain.errors import ConstraintViolation

TRACER_NAME = "relstore"

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = "relstore",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider for the process.

    Args:
        service_name: Reported as ``service.name``
        otlp_endpoint: OTLP gRPC collector (e.g., "http://localhost:4317");
            spans are batched
        console_export: Also print each span as it ends

    Returns:
        The relstore tracer
    """
    global _tracer

    from relstore import __version__

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": service_name,
                "service.version": __version__,
                "db.system": "relstore",
            }
        )
    )
    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
    if console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = provider.get_tracer(TRACER_NAME)
    return _tracer


def get_tracer() -> trace.Tracer:
    """The configured tracer, or the global provider's when none was set up."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Run a block inside a span.

    Args:
        name: Span name, ``<component>.<operation>``
        attributes: Initial span attributes
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name, attributes=attributes, record_exception=False, set_status_on_exception=False
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_attribute("error.type", type(e).__name__)
            violation = e if isinstance(e, ConstraintViolation) else e.__cause__
            if isinstance(violation, ConstraintViolation):
                span.set_attribute("relstore.constraint", violation.kind)
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
