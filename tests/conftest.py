"""
Shared pytest fixtures for the bullmq_instrumentation tests.

This module provides:
- OpenTelemetry fixtures (span_exporter, tracer_provider, get_spans, find_span)
- Instrumentation fixtures (instrumentation, make_instrumentation)
- Queue library fixtures (queue, flow_producer, make_worker)

Every instrumentation created through these fixtures is disabled on
teardown, so the in-memory queue classes are always left unwrapped.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import pytest
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from bullmq_instrumentation import BullMQInstrumentation
from tests.fixtures import broker

# ============================================================================
# OpenTelemetry Fixtures
# ============================================================================


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """In-memory exporter capturing every finished span of one test."""
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter: InMemorySpanExporter) -> Generator[TracerProvider, None, None]:
    """
    A TracerProvider exporting synchronously to ``span_exporter``.

    The provider is passed explicitly to the instrumentation, so tests never
    depend on the global provider.
    """
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def get_spans(span_exporter: InMemorySpanExporter) -> Callable[[], list[ReadableSpan]]:
    """Return a function listing the finished spans in end order."""

    def _get_spans() -> list[ReadableSpan]:
        return list(span_exporter.get_finished_spans())

    return _get_spans


@pytest.fixture
def find_span(
    get_spans: Callable[[], list[ReadableSpan]],
) -> Callable[[str], ReadableSpan | None]:
    """Return a function finding a finished span by exact name or name prefix."""

    def _find_span(name: str) -> ReadableSpan | None:
        spans = get_spans()
        for span in spans:
            if span.name == name:
                return span
        for span in spans:
            if span.name.startswith(name):
                return span
        return None

    return _find_span


# ============================================================================
# Instrumentation Fixtures
# ============================================================================


@pytest.fixture
def make_instrumentation(
    tracer_provider: TracerProvider,
) -> Generator[Callable[..., BullMQInstrumentation], None, None]:
    """
    Factory for instrumentations over the in-memory queue library.

    Keyword arguments are forwarded to BullMQInstrumentation; ``module``
    defaults to the in-memory broker and ``tracer_provider`` to the test's.
    """
    created: list[BullMQInstrumentation] = []

    def _make(config: Any = None, **kwargs: Any) -> BullMQInstrumentation:
        kwargs.setdefault("tracer_provider", tracer_provider)
        kwargs.setdefault("module", broker)
        instrumentation = BullMQInstrumentation(config, **kwargs)
        created.append(instrumentation)
        return instrumentation

    yield _make

    for instrumentation in reversed(created):
        instrumentation.disable()


@pytest.fixture
def instrumentation(
    make_instrumentation: Callable[..., BullMQInstrumentation],
) -> BullMQInstrumentation:
    """An enabled instrumentation with default configuration."""
    return make_instrumentation()


# ============================================================================
# Queue Library Fixtures
# ============================================================================


@pytest.fixture
def queue() -> broker.Queue:
    return broker.Queue("emails")


@pytest.fixture
def flow_producer() -> broker.FlowProducer:
    return broker.FlowProducer()


@pytest.fixture
def make_worker() -> Callable[..., broker.Worker]:
    """Factory for workers on the ``emails`` queue."""

    def _make(processor: broker.Processor, **kwargs: Any) -> broker.Worker:
        return broker.Worker(kwargs.pop("queue_name", "emails"), processor, **kwargs)

    return _make
