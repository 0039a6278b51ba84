"""
Observability for promptline: structured logging, metrics, tracing and probes.

Usage:
    >>> from promptline.observability import get_logger, probe
    >>>
    >>> logger = get_logger(__name__)
    >>> with probe("pipeline.save", execution_id=execution.id):
    ...     await store.save(execution)

Environment variables:
    - PROMPTLINE_OBSERVABILITY__LOG_LEVEL=INFO
    - PROMPTLINE_OBSERVABILITY__ENABLE_TRACING=true
    - PROMPTLINE_OBSERVABILITY__ENABLE_METRICS=true
"""

from .logging import get_logger, get_trace_id, set_trace_id, setup_logging
from .metrics import counter, get_metrics_collector, histogram, setup_metrics, timer
from .probe import probe
from .tracing import setup_tracing, trace_span

__all__ = [
    "get_logger",
    "get_trace_id",
    "set_trace_id",
    "setup_logging",
    "counter",
    "histogram",
    "timer",
    "get_metrics_collector",
    "setup_metrics",
    "probe",
    "setup_tracing",
    "trace_span",
]
