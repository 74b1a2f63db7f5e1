"""OpenTelemetry tracing support for labelscan.

Tracing is optional and disabled by default. It needs the ``tracing`` extra
(opentelemetry-api / opentelemetry-sdk). While disabled every helper in this
module is a no-op, so pipeline code can call them unconditionally.

Usage:
    from labelscan.infrastructure.observability import configure_tracing, trace_span

    configure_tracing(service_name="labelscan-api")

    with trace_span("decode_label", filename=filename):
        ...
"""

from __future__ import annotations

import functools
import inspect
from types import TracebackType
from typing import Any, Callable, TypeVar

from .logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_tracer: Any = None
_tracing_enabled: bool = False


def is_tracing_enabled() -> bool:
    """Check if tracing is currently enabled."""
    return _tracing_enabled


def configure_tracing(
    *,
    service_name: str = "labelscan",
    enable: bool = True,
    sample_rate: float = 1.0,
    console_export: bool = False,
) -> bool:
    """Configure OpenTelemetry tracing.

    Args:
        service_name: Name of this service in traces.
        enable: If False, tracing stays disabled.
        sample_rate: Fraction of traces to sample (0.0 to 1.0).
        console_export: Print finished spans to stdout (debugging aid).

    Returns:
        True if tracing was configured, False otherwise.
    """
    global _tracer, _tracing_enabled

    if not enable:
        _tracing_enabled = False
        logger.info("Tracing disabled by configuration")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import SERVICE_NAME, Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
    except ImportError as e:
        logger.debug("OpenTelemetry not available: %s", e)
        _tracing_enabled = False
        return False

    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name}),
        sampler=TraceIdRatioBased(sample_rate),
    )
    if console_export:
        from opentelemetry.sdk.trace.export import (
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name)
    _tracing_enabled = True
    logger.info("Tracing enabled for service '%s'", service_name)
    return True


class trace_span:
    """Context manager opening a span when tracing is enabled.

    Yields the span, or None while tracing is disabled. Attribute values are
    converted to strings; None values are skipped.
    """

    def __init__(self, name: str, **attributes: Any) -> None:
        self.name = name
        self.attributes = attributes
        self._span_cm: Any = None

    def __enter__(self) -> Any:
        if not _tracing_enabled or _tracer is None:
            return None
        self._span_cm = _tracer.start_as_current_span(self.name)
        span = self._span_cm.__enter__()
        for key, value in self.attributes.items():
            if value is not None:
                span.set_attribute(key, str(value))
        return span

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool:
        if self._span_cm is not None:
            self._span_cm.__exit__(exc_type, exc_value, traceback)
            self._span_cm = None
        return False


def traced(name: str | None = None) -> Callable[[F], F]:
    """Decorator wrapping a sync or async function in a span.

    Example:
        @traced("ocr_fallback")
        async def extract_text(...): ...
    """

    def decorator(func: F) -> F:
        span_name = name or func.__name__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with trace_span(span_name):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name):
                return func(*args, **kwargs)

        return sync_wrapper  # type: ignore[return-value]

    return decorator


def _current_recording_span() -> Any:
    if not _tracing_enabled:
        return None
    from opentelemetry import trace

    span = trace.get_current_span()
    if span is not None and span.is_recording():
        return span
    return None


def set_span_attribute(key: str, value: Any) -> None:
    """Set an attribute on the current span (stringified)."""
    span = _current_recording_span()
    if span is not None and value is not None:
        span.set_attribute(key, str(value))


def add_span_event(name: str, **attributes: Any) -> None:
    """Add a timestamped event to the current span."""
    span = _current_recording_span()
    if span is not None:
        span.add_event(
            name, attributes={k: str(v) for k, v in attributes.items() if v is not None}
        )


def record_exception(exception: BaseException) -> None:
    """Record an exception on the current span and mark it as errored."""
    span = _current_recording_span()
    if span is not None:
        from opentelemetry import trace

        span.record_exception(exception)
        span.set_status(trace.Status(trace.StatusCode.ERROR))
