"""
OpenTelemetry tracing integration.

``trace_span`` works before ``setup_tracing`` is called: spans then come from
the API's default no-op provider and cost next to nothing.
"""

import functools
import inspect
from collections.abc import Callable
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.trace import Status, StatusCode

from .logging import get_logger, set_trace_id

logger = get_logger(__name__)

TRACER_NAME = "promptline"


class TracingManager:
    """Owns the SDK tracer provider for the process."""

    def __init__(self, service_name: str = "promptline", service_version: str = "1.0.0"):
        self.service_name = service_name
        self.service_version = service_version
        self.tracer_provider: TracerProvider | None = None

    def initialize(self, exporter: SpanExporter | None = None) -> None:
        if self.tracer_provider is not None:
            return

        resource = Resource.create(
            {"service.name": self.service_name, "service.version": self.service_version}
        )
        self.tracer_provider = TracerProvider(resource=resource)
        if exporter is not None:
            self.tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(self.tracer_provider)
        logger.info("Tracing initialized", service=self.service_name)

    def shutdown(self) -> None:
        if self.tracer_provider:
            self.tracer_provider.shutdown()
            self.tracer_provider = None


_tracing_manager: TracingManager | None = None


def setup_tracing(
    service_name: str = "promptline",
    service_version: str = "1.0.0",
    exporter: SpanExporter | None = None,
) -> TracingManager:
    """Install a global SDK tracer provider."""
    global _tracing_manager
    _tracing_manager = TracingManager(service_name, service_version)
    _tracing_manager.initialize(exporter)
    return _tracing_manager


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def span(name: str, attributes: dict[str, Any] | None = None):
    """Start a span, publish its trace id to the logging context and record errors."""
    with get_tracer().start_as_current_span(name, record_exception=False) as current:
        for key, value in (attributes or {}).items():
            current.set_attribute(key, str(value))

        context = current.get_span_context()
        if context.is_valid:
            set_trace_id(format(context.trace_id, "032x"))

        try:
            yield current
        except Exception as e:
            current.record_exception(e)
            current.set_status(Status(StatusCode.ERROR, str(e)))
            raise


def trace_span(name: str | None = None, attributes: dict[str, Any] | None = None):
    """Decorator for automatic span creation around sync or async callables."""

    def decorator(func: Callable) -> Callable:
        span_name = name or f"{func.__module__}.{func.__qualname__}"
        span_attributes = {"function.name": func.__name__, **(attributes or {})}

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            with span(span_name, span_attributes) as current:
                result = await func(*args, **kwargs)
                status = getattr(result, "status", None)
                if status is not None:
                    current.set_attribute("result.status", str(getattr(status, "value", status)))
                return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with span(span_name, span_attributes):
                return func(*args, **kwargs)

        return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper

    return decorator
