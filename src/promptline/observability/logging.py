"""
Structured key=value logging with trace ID propagation.

Every line has the shape::

    t=<ISO8601> level=<LEVEL> trace=<id> mod=<module> op=<func> msg="..." key=value ...
"""

import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime

trace_id_ctx: ContextVar[str | None] = ContextVar("trace_id", default=None)

_loggers: dict[str, "StructuredLogger"] = {}

# Attributes every LogRecord carries; anything else was passed as a field.
_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
    }
)

_FORMATTER_OWNED = frozenset({"trace_id", "op", "ms"})


class StructuredFormatter(logging.Formatter):
    """Render records as a single key=value line."""

    def format(self, record: logging.LogRecord) -> str:
        trace_id = trace_id_ctx.get() or getattr(record, "trace_id", None) or "-"
        mod = record.name.rsplit(".", 1)[-1]
        op = getattr(record, "op", record.funcName or "-")

        duration = getattr(record, "ms", None)
        ms_part = f" ms={duration:.1f}" if duration is not None else ""

        fields = "".join(
            f" {key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in _FORMATTER_OWNED
        )

        line = (
            f"t={datetime.now(UTC).isoformat()} level={record.levelname} trace={trace_id} "
            f'mod={mod} op={op}{ms_part} msg="{record.getMessage()}"{fields}'
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger:
    """Logger facade that turns keyword arguments into structured fields."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, exc_info: bool = False, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        extra = {k: v for k, v in kwargs.items() if k not in _RECORD_ATTRS}
        extra["trace_id"] = trace_id_ctx.get()
        self.logger.log(level, msg, extra=extra, exc_info=exc_info, stacklevel=3)

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)

    def exception(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, exc_info=True, **kwargs)

    def timed(self, msg: str, duration_ms: float, **kwargs):
        """Log with timing information."""
        kwargs["ms"] = duration_ms
        self.info(msg, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module."""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def setup_logging(level: str = "INFO") -> None:
    """Install the structured formatter on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("opentelemetry").setLevel(logging.WARNING)


def set_trace_id(trace_id: str) -> None:
    trace_id_ctx.set(trace_id)


def get_trace_id() -> str | None:
    return trace_id_ctx.get()


def clear_trace_id() -> None:
    trace_id_ctx.set(None)
