"""
Observability utilities for exoquic.

Tracing is composition based: components accept a ``Tracer`` and default to
``create_tracer(__name__, enable_tracing)``, which yields a real
OpenTelemetry tracer only when the optional dependency is installed.

Example:
    >>> from exoquic.observability import OTEL_AVAILABLE, create_tracer
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("exoquic.example"):
    ...     pass
"""

from exoquic.observability.attributes import (
    ATTR_BATCH_COUNT,
    ATTR_BATCH_SIZE,
    ATTR_CACHE_ENABLED,
    ATTR_CACHE_HIT,
    ATTR_CHANNEL,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_MANAGER,
    ATTR_PARTITION,
    ATTR_RECONNECT_DELAY,
    ATTR_SERVER_URL,
    ATTR_SESSION,
    ATTR_SUBSCRIPTION_ID,
    ATTR_SUBSCRIPTION_KEY,
    ATTR_TOKEN_RENEWED,
    ATTR_TOPIC,
)
from exoquic.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from exoquic.observability.tracing import OTEL_AVAILABLE, get_tracer

__all__ = [
    # Availability
    "OTEL_AVAILABLE",
    "get_tracer",
    # Tracers
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    # Attributes
    "ATTR_BATCH_COUNT",
    "ATTR_BATCH_SIZE",
    "ATTR_CACHE_ENABLED",
    "ATTR_CACHE_HIT",
    "ATTR_CHANNEL",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_MANAGER",
    "ATTR_PARTITION",
    "ATTR_RECONNECT_DELAY",
    "ATTR_SERVER_URL",
    "ATTR_SESSION",
    "ATTR_SUBSCRIPTION_ID",
    "ATTR_SUBSCRIPTION_KEY",
    "ATTR_TOKEN_RENEWED",
    "ATTR_TOPIC",
]
