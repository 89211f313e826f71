"""Structured logging for the request pipeline.

Every request runs inside a LogContext binding a request id and the
operation name, so any record emitted while the request is in flight (by
the orchestrator, a plugin or a resolver) can be correlated. When an
OpenTelemetry span is active its trace and span ids are attached too.

Usage:
    from strata.observability.logging import configure_logging

    configure_logging(json_format=True, level="INFO")

    logger = logging.getLogger(__name__)
    logger.info("Composed pipeline")
    # {"timestamp": "...", "level": "INFO", "logger": "strata.composer",
    #  "message": "Composed pipeline", "request_id": "4f1c0a9e2b7d", ...}
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

import orjson
from opentelemetry import trace

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
operation_name_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "operation_name", default=""
)

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "request_id": request_id_var,
    "operation_name": operation_name_var,
}

# Attributes every LogRecord has; anything else was passed via ``extra``
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def correlation_fields() -> dict[str, str]:
    """Request and trace identifiers bound to the current context."""
    fields = {key: var.get() for key, var in _CONTEXT_VARS.items() if var.get()}

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        fields["trace_id"] = format(span_context.trace_id, "032x")
        fields["span_id"] = format(span_context.span_id, "016x")
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation.

    Extra attributes passed with ``logger.info(..., extra={...})`` are
    copied to the top level; values orjson cannot encode are stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        data.update(correlation_fields())
        data.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            data["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        return orjson.dumps(data, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Single-line formatter for development.

    12:34:56.789 INFO     strata.orchestrator: Pipeline reloaded [req=4f1c0a9e op=GetUser]
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created)
        line = (
            f"{created:%H:%M:%S}.{int(record.msecs):03d} {record.levelname:<8} "
            f"{record.name}: {record.getMessage()}"
        )

        fields = correlation_fields()
        tags = []
        if "request_id" in fields:
            tags.append(f"req={fields['request_id'][:8]}")
        if "operation_name" in fields:
            tags.append(f"op={fields['operation_name']}")
        if "trace_id" in fields:
            tags.append(f"trace={fields['trace_id'][:8]}")
        if tags:
            line += f" [{' '.join(tags)}]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{line}{self.RESET}" if color else line


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Replace the root handlers with one formatted stream handler.

    Args:
        json_format: Emit JSON lines instead of console lines
        level: Root log level name
        use_colors: Color console lines when writing to a terminal
        stream: Target stream, stderr by default
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)

    # Exporter retries are noisy at INFO
    logging.getLogger("opentelemetry").setLevel(logging.WARNING)


class LogContext:
    """Bind correlation values for the duration of a block.

    Usage:
        with LogContext(request_id="4f1c0a9e2b7d", operation_name="GetUser"):
            logger.info("Executing")
    """

    def __init__(self, **values: str) -> None:
        unknown = set(values) - set(_CONTEXT_VARS)
        if unknown:
            raise TypeError(f"Unknown log context keys: {sorted(unknown)}")
        self.values = values
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for key, value in self.values.items():
            var = _CONTEXT_VARS[key]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
