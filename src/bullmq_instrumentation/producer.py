"""
Producer side of the propagation: job, bulk and flow submission.

Every submission gets one PRODUCER span. The span's context is injected into
the options of every job being submitted *before* the queue is called, and
the queue is called inside that context, so the worker can parent its
consumer span on this one.

Span shapes:
- ``Queue.add``: ``"<queue>.<job> Queue.add"``, one job
- ``Queue.addBulk``: ``"<queue> Queue.addBulk"``, N jobs, one span
- ``FlowProducer.add``: ``"<queue>.<job> FlowProducer.add"``, the whole tree
  under one span
- ``FlowProducer.addBulk``: ``"<queue> FlowProducer.addBulk"``, every tree
  under one span
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Span

from bullmq_instrumentation.config import InstrumentationConfig
from bullmq_instrumentation.models import read_field
from bullmq_instrumentation.observability.attributes import (
    ATTR_FLOW_NODE_COUNT,
    ATTR_JOB_BULK_COUNT,
    ATTR_JOB_BULK_NAMES,
    ATTR_JOB_NAME,
    ATTR_JOB_OPTS,
    ATTR_JOB_PARENT_KEY,
    ATTR_JOB_WAIT_CHILDREN_KEY,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_MESSAGE_ID,
    ATTR_MESSAGING_MESSAGE_IDS,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_QUEUE_NAME,
)
from bullmq_instrumentation.observability.mapping import MISSING, flatten_attributes
from bullmq_instrumentation.observability.propagation import inject_context
from bullmq_instrumentation.observability.tracer import SpanFactory, SpanKindEnum, span_name
from bullmq_instrumentation.observability.tracing import TracedCall, traced_wrapper
from bullmq_instrumentation.registry import OperationDescriptor, WrapperFactory

logger = logging.getLogger(__name__)

OPTIONS_PARAMETER = "opts"
WAITING_CHILDREN_SUFFIX = "waiting-children"


class CallArguments:
    """
    Signature-aware access to the arguments of a wrapped call.

    ``argument(1)`` is the first argument after ``self``, however the caller
    passed it (positionally or by keyword).
    """

    def __init__(self, original: Callable[..., Any]) -> None:
        try:
            self._signature: inspect.Signature | None = inspect.signature(original)
        except (TypeError, ValueError):
            self._signature = None
        self._names = list(self._signature.parameters) if self._signature else []

    def bind(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> inspect.BoundArguments | None:
        """Bind the call; None when it cannot be bound (the original will raise)."""
        if self._signature is None:
            return None
        try:
            return self._signature.bind(*args, **kwargs)
        except TypeError:
            return None

    def name(self, index: int) -> str | None:
        return self._names[index] if index < len(self._names) else None

    def has(self, parameter: str) -> bool:
        return parameter in self._names

    def argument(self, bound: inspect.BoundArguments, index: int) -> Any:
        name = self.name(index)
        if name is None:
            return MISSING
        return bound.arguments.get(name, MISSING)


def publish_attributes(config: InstrumentationConfig, destination: str | None) -> dict[str, Any]:
    """Attributes shared by every producer span."""
    return {
        ATTR_MESSAGING_SYSTEM: config.messaging_system,
        ATTR_MESSAGING_DESTINATION: destination,
        ATTR_MESSAGING_OPERATION: "publish",
        ATTR_QUEUE_NAME: destination,
    }


def options_attributes(config: InstrumentationConfig, opts: Any) -> dict[str, Any]:
    """Flattened job options, without the propagation carrier."""
    if not config.include_job_options or not isinstance(opts, Mapping):
        return {}
    visible = {key: value for key, value in opts.items() if key != config.carrier_field}
    return flatten_attributes(ATTR_JOB_OPTS, visible)


def parent_attributes(opts: Any) -> dict[str, Any]:
    """
    Parent linkage of a child job.

    Explicit ``parentKey`` / ``waitChildrenKey`` options win; otherwise they
    are derived from ``opts["parent"] = {"id": ..., "queue": ...}`` the way
    the queue builds them (``<queue>:<id>`` and ``<queue>:waiting-children``).
    """
    if not isinstance(opts, Mapping):
        return {}
    parent_key = opts.get("parentKey")
    wait_children_key = opts.get("waitChildrenKey")
    parent = opts.get("parent")
    if isinstance(parent, Mapping) and parent.get("id") is not None and parent.get("queue"):
        parent_key = parent_key or f"{parent['queue']}:{parent['id']}"
        wait_children_key = wait_children_key or f"{parent['queue']}:{WAITING_CHILDREN_SUFFIX}"
    attributes: dict[str, Any] = {}
    if parent_key is not None:
        attributes[ATTR_JOB_PARENT_KEY] = str(parent_key)
    if wait_children_key is not None:
        attributes[ATTR_JOB_WAIT_CHILDREN_KEY] = str(wait_children_key)
    return attributes


def message_context(span: Span, parent: Context | None = None) -> Context:
    """Context of the message: the parent context with the producer span active."""
    if parent is None:
        parent = otel_context.get_current()
    return trace.set_span_in_context(span, parent)


def _job_id(job: Any) -> str | None:
    job_id = read_field(job, "id")
    return None if job_id is MISSING else str(job_id)


def _record_id(span: Span, job: Any) -> None:
    job_id = _job_id(job)
    if job_id is not None:
        span.set_attribute(ATTR_MESSAGING_MESSAGE_ID, job_id)


def _record_ids(span: Span, jobs: Any, unwrap: Callable[[Any], Any] | None = None) -> None:
    if not isinstance(jobs, Sequence) or isinstance(jobs, str):
        return
    ids = [_job_id(unwrap(job) if unwrap else job) for job in jobs]
    present = [job_id for job_id in ids if job_id is not None]
    if present:
        span.set_attribute(ATTR_MESSAGING_MESSAGE_IDS, present)


def _inject_job(config: InstrumentationConfig, job: Any, ctx: Context) -> Any:
    """Copy of a bulk job entry ``{"name", "data", "opts"}`` with its carrier injected."""
    if not isinstance(job, Mapping):
        logger.debug(
            "Bulk entry is not a mapping, not injecting",
            extra={"entry_type": type(job).__name__},
        )
        return job
    injected = dict(job)
    injected[OPTIONS_PARAMETER] = inject_context(
        ctx, job.get(OPTIONS_PARAMETER), config.carrier_field, config.propagator
    )
    return injected


def inject_flow(config: InstrumentationConfig, node: Any, ctx: Context) -> tuple[Any, int]:
    """
    Copy a flow tree, injecting ``ctx`` into every node's options.

    Returns:
        The new tree and the number of nodes injected
    """
    if not isinstance(node, Mapping):
        return node, 0
    injected = _inject_job(config, node, ctx)
    count = 1
    children = node.get("children")
    if isinstance(children, Sequence) and not isinstance(children, str):
        new_children = []
        for child in children:
            new_child, child_count = inject_flow(config, child, ctx)
            new_children.append(new_child)
            count += child_count
        injected["children"] = new_children
    return injected, count


def _names(entries: Any) -> list[str]:
    if not isinstance(entries, Sequence) or isinstance(entries, str):
        return []
    names = []
    for entry in entries:
        name = read_field(entry, "name")
        names.append("" if name is MISSING else str(name))
    return names


def _flow_job(node: Any) -> Any:
    return read_field(node, "job")


def queue_add_wrapper(
    descriptor: OperationDescriptor, spans: SpanFactory, config: InstrumentationConfig
) -> WrapperFactory:
    """Wrapper factory for single-job submission (``Queue.add``)."""

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        arguments = CallArguments(original)

        def prepare(args: tuple[Any, ...], kwargs: dict[str, Any]) -> TracedCall | None:
            bound = arguments.bind(args, kwargs)
            if bound is None or not args:
                return None
            queue_name = read_field(args[0], "name")
            queue_name = None if queue_name is MISSING else str(queue_name)
            job_name = arguments.argument(bound, 1)
            job_name = None if job_name is MISSING else str(job_name)
            opts = bound.arguments.get(OPTIONS_PARAMETER)

            attributes = publish_attributes(config, queue_name)
            attributes[ATTR_JOB_NAME] = job_name
            attributes.update(options_attributes(config, opts))
            attributes.update(parent_attributes(opts))

            span = spans.start_span(
                span_name(queue_name, job_name, descriptor.label),
                kind=SpanKindEnum.PRODUCER,
                attributes=attributes,
            )
            ctx = message_context(span)
            if arguments.has(OPTIONS_PARAMETER):
                bound.arguments[OPTIONS_PARAMETER] = inject_context(
                    ctx, opts, config.carrier_field, config.propagator
                )
            else:
                logger.debug(
                    "Operation has no options parameter, trace context not propagated",
                    extra={"operation": descriptor.label},
                )
            return TracedCall(span, ctx, bound.args, bound.kwargs, on_result=_record_id)

        return traced_wrapper(original, prepare)

    return factory


def queue_add_bulk_wrapper(
    descriptor: OperationDescriptor, spans: SpanFactory, config: InstrumentationConfig
) -> WrapperFactory:
    """Wrapper factory for batch submission (``Queue.addBulk``): one span per batch."""

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        arguments = CallArguments(original)

        def prepare(args: tuple[Any, ...], kwargs: dict[str, Any]) -> TracedCall | None:
            bound = arguments.bind(args, kwargs)
            jobs = arguments.argument(bound, 1) if bound is not None else MISSING
            if bound is None or not args or not isinstance(jobs, Sequence) or isinstance(jobs, str):
                return None
            queue_name = read_field(args[0], "name")
            queue_name = None if queue_name is MISSING else str(queue_name)
            names = _names(jobs)

            attributes = publish_attributes(config, queue_name)
            attributes[ATTR_JOB_BULK_NAMES] = names
            attributes[ATTR_JOB_BULK_COUNT] = len(jobs)

            span = spans.start_span(
                span_name(queue_name, None, descriptor.label),
                kind=SpanKindEnum.PRODUCER,
                attributes=attributes,
            )
            ctx = message_context(span)
            bound.arguments[arguments.name(1)] = [_inject_job(config, job, ctx) for job in jobs]
            return TracedCall(span, ctx, bound.args, bound.kwargs, on_result=_record_ids)

        return traced_wrapper(original, prepare)

    return factory


def flow_add_wrapper(
    descriptor: OperationDescriptor, spans: SpanFactory, config: InstrumentationConfig
) -> WrapperFactory:
    """Wrapper factory for tree submission (``FlowProducer.add``)."""

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        arguments = CallArguments(original)

        def prepare(args: tuple[Any, ...], kwargs: dict[str, Any]) -> TracedCall | None:
            bound = arguments.bind(args, kwargs)
            flow = arguments.argument(bound, 1) if bound is not None else MISSING
            if bound is None or not isinstance(flow, Mapping):
                return None
            queue_name = flow.get("queueName")
            job_name = flow.get("name")
            queue_name = None if queue_name is None else str(queue_name)
            job_name = None if job_name is None else str(job_name)
            opts = flow.get(OPTIONS_PARAMETER)

            attributes = publish_attributes(config, queue_name)
            attributes[ATTR_JOB_NAME] = job_name
            attributes.update(options_attributes(config, opts))
            attributes.update(parent_attributes(opts))

            span = spans.start_span(
                span_name(queue_name, job_name, descriptor.label),
                kind=SpanKindEnum.PRODUCER,
                attributes=attributes,
            )
            ctx = message_context(span)
            injected, node_count = inject_flow(config, flow, ctx)
            span.set_attribute(ATTR_FLOW_NODE_COUNT, node_count)
            bound.arguments[arguments.name(1)] = injected

            def on_result(span: Span, node: Any) -> None:
                _record_id(span, _flow_job(node))

            return TracedCall(span, ctx, bound.args, bound.kwargs, on_result=on_result)

        return traced_wrapper(original, prepare)

    return factory


def flow_add_bulk_wrapper(
    descriptor: OperationDescriptor, spans: SpanFactory, config: InstrumentationConfig
) -> WrapperFactory:
    """Wrapper factory for several trees at once (``FlowProducer.addBulk``)."""

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        arguments = CallArguments(original)

        def prepare(args: tuple[Any, ...], kwargs: dict[str, Any]) -> TracedCall | None:
            bound = arguments.bind(args, kwargs)
            flows = arguments.argument(bound, 1) if bound is not None else MISSING
            if bound is None or not isinstance(flows, Sequence) or isinstance(flows, str):
                return None
            first = flows[0] if flows else None
            queue_name = read_field(first, "queueName")
            queue_name = None if queue_name is MISSING else str(queue_name)

            attributes = publish_attributes(config, queue_name)
            attributes[ATTR_JOB_BULK_NAMES] = _names(flows)
            attributes[ATTR_JOB_BULK_COUNT] = len(flows)

            span = spans.start_span(
                span_name(queue_name, None, descriptor.label),
                kind=SpanKindEnum.PRODUCER,
                attributes=attributes,
            )
            ctx = message_context(span)
            injected_flows = []
            node_count = 0
            for flow in flows:
                injected, count = inject_flow(config, flow, ctx)
                injected_flows.append(injected)
                node_count += count
            span.set_attribute(ATTR_FLOW_NODE_COUNT, node_count)
            bound.arguments[arguments.name(1)] = injected_flows

            def on_result(span: Span, nodes: Any) -> None:
                _record_ids(span, nodes, unwrap=_flow_job)

            return TracedCall(span, ctx, bound.args, bound.kwargs, on_result=on_result)

        return traced_wrapper(original, prepare)

    return factory


__all__ = [
    "CallArguments",
    "flow_add_bulk_wrapper",
    "flow_add_wrapper",
    "inject_flow",
    "message_context",
    "options_attributes",
    "parent_attributes",
    "publish_attributes",
    "queue_add_bulk_wrapper",
    "queue_add_wrapper",
]
