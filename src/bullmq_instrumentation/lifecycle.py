"""
Span events for secondary job actions.

Removal, retry and delay requests happen while a job is being processed but
are not worth a span of their own. Each call adds an event, named after the
action, to whatever span is active (normally the consumer span) and then
runs the action untouched.

Lock renewal runs outside the processor, from the worker's renewal loop, for
several jobs at once. It adds an ``extendLock`` event to the consumer span
of every renewed job that is being processed.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable, Iterable
from typing import Any

from opentelemetry import trace

from bullmq_instrumentation.config import InstrumentationConfig
from bullmq_instrumentation.consumer import InFlightJobs
from bullmq_instrumentation.models import JobView
from bullmq_instrumentation.observability.attributes import (
    ATTR_JOB_ATTEMPTS,
    ATTR_JOB_NAME,
    ATTR_JOB_PROCESSED_TIMESTAMP,
    ATTR_JOB_TIMESTAMP,
)
from bullmq_instrumentation.observability.mapping import drop_invalid_attributes
from bullmq_instrumentation.observability.tracer import SpanFactory
from bullmq_instrumentation.producer import CallArguments
from bullmq_instrumentation.registry import OperationDescriptor, WrapperFactory

logger = logging.getLogger(__name__)

LOCK_RENEWAL_EVENT = "extendLock"


def event_attributes(job: Any) -> dict[str, Any]:
    """Job attributes attached to a lifecycle event."""
    view = JobView.from_job(job)
    return drop_invalid_attributes(
        {
            ATTR_JOB_NAME: view.name,
            ATTR_JOB_TIMESTAMP: view.timestamp,
            ATTR_JOB_PROCESSED_TIMESTAMP: view.processed_on,
            ATTR_JOB_ATTEMPTS: view.attempts_made,
        }
    )


def record_event(name: str, job: Any) -> bool:
    """
    Add a ``name`` event to the active span.

    Returns:
        True if an event was recorded, False when no span is recording
    """
    span = trace.get_current_span()
    if not span.is_recording():
        return False
    _add_event(span, name, job)
    return True


def _add_event(span: trace.Span, name: str, job: Any) -> None:
    try:
        attributes = event_attributes(job)
    except Exception as e:
        logger.debug(
            "Could not read job for lifecycle event",
            extra={"event": name, "error": str(e), "error_type": type(e).__name__},
        )
        attributes = {}
    span.add_event(name, attributes=attributes)


def lifecycle_event_wrapper(
    descriptor: OperationDescriptor, spans: SpanFactory, config: InstrumentationConfig
) -> WrapperFactory:
    """Wrapper factory recording ``descriptor.operation`` as an event on the active span."""
    event_name = descriptor.operation

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(original):

            @functools.wraps(original)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                if args:
                    record_event(event_name, args[0])
                return await original(*args, **kwargs)

            return async_wrapper

        @functools.wraps(original)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            if args:
                record_event(event_name, args[0])
            return original(*args, **kwargs)

        return sync_wrapper

    return factory


def renewed_job_ids(
    arguments: CallArguments, args: tuple[Any, ...], kwargs: dict[str, Any]
) -> list[str]:
    """
    Ids of the jobs a lock renewal call covers.

    Either the call names them (``job_ids``), or the owner holds the jobs it
    is processing in ``jobs``, as ``(job, token)`` pairs or bare jobs.
    """
    if arguments.has("job_ids"):
        bound = arguments.bind(args, kwargs)
        named = bound.arguments.get("job_ids") if bound is not None else None
        return [str(job_id) for job_id in named or ()]
    if not args:
        return []
    jobs: Iterable[Any] = getattr(args[0], "jobs", None) or ()
    job_ids: list[str] = []
    for item in list(jobs):
        job = item[0] if isinstance(item, tuple) else item
        job_id = getattr(job, "id", None)
        if job_id is not None:
            job_ids.append(str(job_id))
    return job_ids


def lock_renewal_wrapper(
    descriptor: OperationDescriptor,
    spans: SpanFactory,
    config: InstrumentationConfig,
    in_flight: InFlightJobs,
) -> WrapperFactory:
    """Wrapper factory adding an ``extendLock`` event to the spans of renewed jobs."""

    def record_renewal(
        arguments: CallArguments, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> None:
        try:
            job_ids = renewed_job_ids(arguments, args, kwargs)
        except Exception as e:
            logger.debug(
                "Could not read jobs of lock renewal",
                extra={"operation": descriptor.label, "error": str(e)},
            )
            return
        for job_id in job_ids:
            entry = in_flight.get(job_id)
            if entry is not None and entry.call.span.is_recording():
                _add_event(entry.call.span, LOCK_RENEWAL_EVENT, entry.job)

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        arguments = CallArguments(original)

        if inspect.iscoroutinefunction(original):

            @functools.wraps(original)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                record_renewal(arguments, args, kwargs)
                return await original(*args, **kwargs)

            return async_wrapper

        @functools.wraps(original)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            record_renewal(arguments, args, kwargs)
            return original(*args, **kwargs)

        return sync_wrapper

    return factory


__all__ = [
    "LOCK_RENEWAL_EVENT",
    "event_attributes",
    "lifecycle_event_wrapper",
    "lock_renewal_wrapper",
    "record_event",
    "renewed_job_ids",
]
