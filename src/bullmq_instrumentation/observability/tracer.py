"""
Span factory for the BullMQ instrumentation.

The factory is the only place that talks to the OpenTelemetry tracer. It owns
the span naming scheme, the span kind mapping and the attribute cleaning, so
the producer and consumer paths only describe *what* to record.

Example:
    >>> factory = SpanFactory(tracer_provider=provider)
    >>> span = factory.start_span(
    ...     span_name("emails", "welcome", "Queue.add"),
    ...     kind=SpanKindEnum.PRODUCER,
    ...     attributes={"messaging.destination": "emails"},
    ... )
    >>> try:
    ...     do_work()
    ... finally:
    ...     span.end()
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, TracerProvider

from bullmq_instrumentation.observability.attributes import ATTR_ERROR_TYPE
from bullmq_instrumentation.observability.mapping import drop_invalid_attributes

INSTRUMENTING_MODULE_NAME = "bullmq_instrumentation"


class SpanKindEnum(Enum):
    """
    Span kinds for distributed tracing.

    Mapped to OpenTelemetry's SpanKind by the factory.

    Values:
        INTERNAL: Default span kind for internal operations
        PRODUCER: Job submission (single, bulk or flow)
        CONSUMER: Job processing by a worker
        CLIENT: Outgoing request to a remote service
        SERVER: Incoming request from a remote service
    """

    INTERNAL = "internal"
    PRODUCER = "producer"
    CONSUMER = "consumer"
    CLIENT = "client"
    SERVER = "server"


_KIND_MAPPING = {
    SpanKindEnum.INTERNAL: SpanKind.INTERNAL,
    SpanKindEnum.PRODUCER: SpanKind.PRODUCER,
    SpanKindEnum.CONSUMER: SpanKind.CONSUMER,
    SpanKindEnum.CLIENT: SpanKind.CLIENT,
    SpanKindEnum.SERVER: SpanKind.SERVER,
}


def span_name(
    destination: str | None,
    job_name: str | None,
    operation: str,
    attempt: int | None = None,
) -> str:
    """
    Build the deterministic span name.

    Format: ``"<destination>.<job_name> <operation>"`` with ``" #<attempt>"``
    appended when an attempt number is given (consumer spans only). Without a
    job name (bulk submissions) the format is ``"<destination> <operation>"``.

    Example:
        >>> span_name("emails", "welcome", "Worker.mailer", attempt=2)
        'emails.welcome Worker.mailer #2'
    """
    target = destination or "unknown"
    if job_name:
        target = f"{target}.{job_name}"
    name = f"{target} {operation}"
    if attempt is not None:
        name = f"{name} #{attempt}"
    return name


def set_error(span: Span, error: BaseException) -> BaseException:
    """
    Record an error on a span and mark it failed.

    The error is returned unchanged so callers can ``raise`` it as-is.
    """
    span.record_exception(error)
    span.set_attribute(ATTR_ERROR_TYPE, type(error).__name__)
    span.set_status(Status(StatusCode.ERROR, str(error)))
    return error


class SpanFactory:
    """
    Creates spans for instrumented queue operations.

    Args:
        tracer_provider: Provider to obtain the tracer from. None uses the
            globally configured provider.
        version: Instrumentation version reported with the tracer
        extra_attributes: Attributes added to every span

    Example:
        >>> factory = SpanFactory()
        >>> span = factory.start_span("emails Queue.addBulk", SpanKindEnum.PRODUCER)
        >>> span.end()
    """

    def __init__(
        self,
        tracer_provider: TracerProvider | None = None,
        version: str | None = None,
        extra_attributes: Mapping[str, Any] | None = None,
    ) -> None:
        self._tracer = trace.get_tracer(
            INSTRUMENTING_MODULE_NAME,
            version,
            tracer_provider=tracer_provider,
        )
        self._extra_attributes = dict(extra_attributes or {})

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
        context: Context | None = None,
    ) -> Span:
        """
        Start a span that the caller must end.

        Args:
            name: Span name, usually from ``span_name()``
            kind: The span kind (PRODUCER, CONSUMER, ...)
            attributes: Span attributes; invalid values are dropped
            context: Parent context. None means the current context.

        Returns:
            The started span. Caller MUST call span.end().
        """
        merged = {**self._extra_attributes, **(attributes or {})}
        return self._tracer.start_span(
            name,
            context=context,
            kind=_KIND_MAPPING.get(kind, SpanKind.INTERNAL),
            attributes=drop_invalid_attributes(merged),
        )


__all__ = [
    "INSTRUMENTING_MODULE_NAME",
    "SpanFactory",
    "SpanKindEnum",
    "set_error",
    "span_name",
]
