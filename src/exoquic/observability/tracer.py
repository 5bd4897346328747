"""
Tracers for exoquic components.

Every component receives a ``Tracer`` at construction and opens spans
through it. ``create_tracer`` picks the implementation:

- OpenTelemetryTracer when tracing is enabled and OpenTelemetry is installed
- NullTracer otherwise

Tests inject MockTracer to assert on span names and attributes.

Example:
    >>> class ReplayReader:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def read(self, partition: str) -> list:
    ...         with self._tracer.span("replay_reader.read", {ATTR_PARTITION: partition}):
    ...             return await self._load(partition)
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from exoquic.observability.tracing import OTEL_AVAILABLE, get_tracer


class SpanKindEnum(Enum):
    """
    Span kinds used by exoquic.

    INTERNAL covers cache and store work, CLIENT covers token fetches and
    socket connects, CONSUMER covers delivery of a received batch.
    """

    INTERNAL = "internal"
    CLIENT = "client"
    CONSUMER = "consumer"


@runtime_checkable
class Tracer(Protocol):
    """Opens spans around exoquic operations."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span.

        Args:
            name: Dotted span name, e.g. "exoquic.subscriber.connect"
            attributes: Initial span attributes
            kind: Span kind

        Returns:
            Context manager yielding the live span, or None when spans are not recorded
        """
        ...

    @property
    def enabled(self) -> bool:
        """Whether spans are recorded."""
        ...


class NullTracer:
    """Tracer used when tracing is off. Spans cost nothing and yield None."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
    ) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the globally configured OpenTelemetry provider.

    Raises:
        ImportError: If the telemetry extra is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        otel_tracer = get_tracer(tracer_name)
        if otel_tracer is None:
            raise ImportError(
                "OpenTelemetry is not installed. Install it with: pip install exoquic-py[telemetry]"
            )
        self._otel_tracer = otel_tracer

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
    ) -> AbstractContextManager[Span | None]:
        from opentelemetry.trace import SpanKind

        return self._otel_tracer.start_as_current_span(
            name,
            kind=SpanKind[kind.name],
            attributes=attributes or {},
        )

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Tracer for tests; keeps every opened span as ``(name, attributes)``.

    Example:
        >>> tracer = MockTracer()
        >>> cache = ReplayCache(store, tracer=tracer)
        >>> await cache.get_all("orders/eu/sub-1")
        >>> "exoquic.replay_cache.get_all" in tracer.span_names
        True
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
    ) -> Iterator[None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Build the tracer for a component.

    Args:
        name: Instrumentation scope, usually the module's ``__name__``
        enable_tracing: False forces a NullTracer

    Returns:
        OpenTelemetryTracer when enabled and available, else NullTracer
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanKindEnum",
    "Tracer",
    "create_tracer",
]
