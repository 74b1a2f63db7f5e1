"""Observability and logging facades."""

from .logging import (
    configure_logging,
    current_log_context,
    get_logger,
    log_context,
    log_exception,
)
from .metrics import (
    format_prometheus,
    increment_counter,
    observe_histogram,
    record_decode,
    record_ocr_request,
    record_symbol_attempt,
)
from .tracing import (
    add_span_event,
    configure_tracing,
    is_tracing_enabled,
    record_exception,
    set_span_attribute,
    trace_span,
    traced,
)

__all__ = [
    # Logging
    "configure_logging",
    "current_log_context",
    "get_logger",
    "log_context",
    "log_exception",
    # Metrics
    "format_prometheus",
    "increment_counter",
    "observe_histogram",
    "record_decode",
    "record_ocr_request",
    "record_symbol_attempt",
    # Tracing
    "add_span_event",
    "configure_tracing",
    "is_tracing_enabled",
    "record_exception",
    "set_span_attribute",
    "trace_span",
    "traced",
]
