"""Tracing and metrics for polyvalid.

Thin wrappers over the OpenTelemetry API. polyvalid never configures a
provider: spans and counters go to whatever the application installed
globally and are no-ops otherwise.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.metrics import Counter
from opentelemetry.trace import Status, StatusCode

from .version import PACKAGE_NAME, PACKAGE_VERSION

logger = logging.getLogger(__name__)

__all__ = ["SpanWrapper", "traced_operation", "record_counter"]


class SpanWrapper:
    """Wraps an OpenTelemetry span, filtering attribute values to valid types."""

    def __init__(self, otel_span: Any) -> None:
        self._span = otel_span

    def set_attribute(self, key: str, value: Any) -> None:
        """Set an attribute on the span."""
        if self._span is None or not self._span.is_recording():
            return
        if value is None:
            return
        if isinstance(value, str | int | float | bool):
            self._span.set_attribute(key, value)
        elif isinstance(value, list | tuple) and all(
            isinstance(v, str | int | float | bool) for v in value
        ):
            self._span.set_attribute(key, list(value))
        else:
            self._span.set_attribute(key, str(value))

    def set_error(self, description: str) -> None:
        if self._span is not None and self._span.is_recording():
            self._span.set_status(Status(StatusCode.ERROR, description))

    def record_exception(self, exception: Exception) -> None:
        if self._span is not None and self._span.is_recording():
            self._span.record_exception(exception)

    def is_recording(self) -> bool:
        return self._span is not None and bool(self._span.is_recording())


def _get_tracer() -> trace.Tracer:
    # Resolved on every call so a provider installed later is picked up
    return trace.get_tracer(PACKAGE_NAME, PACKAGE_VERSION)


@contextmanager
def traced_operation(name: str, attributes: dict[str, Any] | None = None) -> Iterator[SpanWrapper]:
    """Context manager for tracing an operation.

    Args:
        name: Operation name (e.g., "polyvalid.validate")
        attributes: Initial span attributes

    Yields:
        The wrapped span

    Example:
        ```python
        with traced_operation("polyvalid.validate", {"polyvalid.strategy": "auto"}) as span:
            span.set_attribute("polyvalid.errors", 2)
        ```
    """
    with _get_tracer().start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as otel_span:
        span = SpanWrapper(otel_span)
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_error(str(e))
            raise


_counters: dict[str, Counter] = {}
_counters_lock = threading.Lock()


def _get_counter(name: str, description: str, unit: str) -> Counter:
    counter = _counters.get(name)
    if counter is None:
        with _counters_lock:
            counter = _counters.get(name)
            if counter is None:
                meter = metrics.get_meter(PACKAGE_NAME, PACKAGE_VERSION)
                counter = meter.create_counter(name, description=description, unit=unit)
                _counters[name] = counter
    return counter


def record_counter(
    name: str,
    value: int = 1,
    attributes: dict[str, Any] | None = None,
    description: str = "",
    unit: str = "1",
) -> None:
    """Record a counter metric.

    Args:
        name: Metric name
        value: Value to add (default: 1)
        attributes: Metric attributes/labels
        description: Metric description
        unit: Unit of measurement
    """
    try:
        _get_counter(name, description, unit).add(value, attributes=attributes or {})
    except Exception as e:
        logger.debug(f"Failed to record counter {name}: {e}")
