"""Observability helpers for strata.

Structured logging with request correlation. Metrics and tracing are
provided as pipeline plugins (strata.plugins.metrics,
strata.plugins.tracing).
"""

from strata.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    correlation_fields,
    operation_name_var,
    request_id_var,
)

__all__ = [
    "configure_logging",
    "LogContext",
    "correlation_fields",
    "JsonFormatter",
    "ConsoleFormatter",
    "request_id_var",
    "operation_name_var",
]
