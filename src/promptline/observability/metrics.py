"""
OpenTelemetry metrics for prompt execution, resilience and pipelines.

Until ``setup_metrics`` is called every instrument is backed by a no-op meter,
so library code can record unconditionally.
"""

import time
from contextlib import contextmanager

from opentelemetry.metrics import Counter, Histogram, Meter, NoOpMeter

from .logging import get_logger

logger = get_logger(__name__)

PREFIX = "promptline"


class MetricsCollector:
    """Owns the application's instruments on a single meter."""

    def __init__(self, meter: Meter):
        self.meter = meter
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._setup_default_metrics()

    def _setup_default_metrics(self):
        self.counter("prompt_executions_total", "Prompt executions by status and provider")
        self.counter("prompt_execution_retries_total", "Retries consumed by the execution engine")
        self.counter("circuit_breaker_transitions_total", "Circuit breaker state changes")
        self.counter("resilience_fallbacks_total", "Emergency fallback responses served")
        self.counter("pipeline_steps_total", "Pipeline step outcomes")
        self.histogram("execution_duration_seconds", "Prompt execution duration", "s")

    def counter(self, name: str, description: str = "", unit: str = "1") -> Counter:
        """Get or create a counter metric."""
        if name not in self._counters:
            self._counters[name] = self.meter.create_counter(
                f"{PREFIX}_{name}", description=description, unit=unit
            )
        return self._counters[name]

    def histogram(self, name: str, description: str = "", unit: str = "1") -> Histogram:
        """Get or create a histogram metric."""
        if name not in self._histograms:
            self._histograms[name] = self.meter.create_histogram(
                f"{PREFIX}_{name}", description=description, unit=unit
            )
        return self._histograms[name]

    def record_execution(self, model: str, provider: str, status: str, duration: float, retries: int):
        attributes = {"model": model, "provider": provider, "status": status}
        self._counters["prompt_executions_total"].add(1, attributes)
        self._histograms["execution_duration_seconds"].record(duration, attributes)
        if retries:
            self._counters["prompt_execution_retries_total"].add(retries, {"model": model})

    def record_breaker_transition(self, service: str, from_state: str, to_state: str):
        self._counters["circuit_breaker_transitions_total"].add(
            1, {"service": service, "from": from_state, "to": to_state}
        )

    def record_fallback(self, reason: str):
        self._counters["resilience_fallbacks_total"].add(1, {"reason": reason})

    def record_pipeline_step(self, group: str, status: str):
        self._counters["pipeline_steps_total"].add(1, {"group": group, "status": status})


_metrics_collector: MetricsCollector | None = None


def setup_metrics(meter: Meter) -> MetricsCollector:
    """Install the global metrics collector on a real meter."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    logger.info("Metrics collector initialized")
    return _metrics_collector


def get_metrics_collector() -> MetricsCollector:
    """Get the global collector, falling back to a no-op meter."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(NoOpMeter(PREFIX))
    return _metrics_collector


def counter(name: str, description: str = "", unit: str = "1") -> Counter:
    return get_metrics_collector().counter(name, description, unit)


def histogram(name: str, description: str = "", unit: str = "1") -> Histogram:
    return get_metrics_collector().histogram(name, description, unit)


@contextmanager
def timer(metric_name: str, attributes: dict[str, str] | None = None):
    """Record the wrapped block's duration in ``<metric_name>_duration``."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        hist = histogram(f"{metric_name}_duration", "Operation duration", "s")
        hist.record(time.perf_counter() - start_time, attributes or {})
