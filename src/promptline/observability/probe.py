"""
Performance probe: always-on timing with one structured log line per operation.
"""

import contextlib
import time

from .logging import get_logger, get_trace_id
from .metrics import histogram

log = get_logger("promptline.probe")


@contextlib.contextmanager
def probe(op: str, **labels):
    """
    Time the wrapped block.

    Emits ``op=<op> ms=<duration> ok=<bool>`` plus any labels, and records the
    duration in the ``probe_duration_seconds`` histogram. Exceptions propagate
    unchanged after being logged with their type.
    """
    start_time = time.perf_counter()
    ok = True
    error_type = None
    try:
        yield
    except Exception as e:
        ok = False
        error_type = type(e).__name__
        raise
    finally:
        duration = time.perf_counter() - start_time
        fields = dict(labels)
        if error_type:
            fields["error"] = error_type
        log.timed(op, duration * 1000, op=op, ok=ok, trace=get_trace_id() or "-", **fields)
        histogram("probe_duration_seconds", "Probed operation duration", "s").record(
            duration, {"op": op, "ok": str(ok).lower()}
        )
