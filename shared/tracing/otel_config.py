"""OpenTelemetry setup for the load service.

Spans are exported over OTLP/gRPC to any collector (Jaeger, Tempo, the
OpenTelemetry Collector). Until ``configure_tracing`` runs, the global
tracer provider is the no-op default, so instrumented code costs almost
nothing in tests and local runs.
"""

import functools
import inspect
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

F = TypeVar("F", bound=Callable[..., Any])


def configure_tracing(
    service_name: str,
    service_version: str = "1.0.0",
    otlp_endpoint: str = "http://localhost:4317",
    sampling_rate: float = 1.0,
) -> TracerProvider:
    """Install a batching OTLP tracer provider as the global provider.

    Args:
        service_name: ``service.name`` resource attribute
        service_version: ``service.version`` resource attribute
        otlp_endpoint: Collector gRPC endpoint
        sampling_rate: Fraction of root traces to keep (0.0 to 1.0);
            child spans follow their parent's decision

    Returns:
        The installed provider, to be shut down on exit
    """
    provider = TracerProvider(
        resource=Resource(
            attributes={
                "service.name": service_name,
                "service.namespace": "cpu-load-service",
                "service.version": service_version,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(sampling_rate)),
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the current global provider."""
    return trace.get_tracer(name)


@contextmanager
def _function_span(func: Callable[..., Any], span_name: Optional[str]) -> Iterator[trace.Span]:
    tracer = get_tracer(func.__module__)
    with tracer.start_as_current_span(span_name or func.__name__) as span:
        span.set_attribute("function.name", func.__name__)
        span.set_attribute("function.module", func.__module__)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
        span.set_status(Status(StatusCode.OK))


def trace_function(span_name: Optional[str] = None) -> Callable[[F], F]:
    """Wrap every call of the decorated function in its own span.

    Works for plain and ``async`` functions. Exceptions are recorded on the
    span and re-raised.

    Args:
        span_name: Span name (defaults to the function name)
    """

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with _function_span(func, span_name):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with _function_span(func, span_name):
                return func(*args, **kwargs)

        return sync_wrapper  # type: ignore

    return decorator
