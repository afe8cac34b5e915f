"""
Consumer side of the propagation: job processing by a worker.

The worker's processing entry point is wrapped. For each job the producer's
context is extracted from the job options, a CONSUMER span is started as its
child, and the processor runs with that span active for as long as it takes,
including every suspension on I/O. Concurrent jobs on one worker run in
separate asyncio tasks and therefore in separate contexts.

The worker never lets a processor error escape: it hands the error to
``Job.moveToFailed`` and returns normally. That call is wrapped too, and
records the error on the consumer span of the job it fails. Consumer calls
in progress are kept in ``InFlightJobs`` so the failure and lock renewal
wraps can find the span of a job by its id.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Span

from bullmq_instrumentation.config import InstrumentationConfig
from bullmq_instrumentation.models import JobView, WorkerView
from bullmq_instrumentation.observability.attributes import (
    ATTR_JOB_ATTEMPTS,
    ATTR_JOB_DELAY,
    ATTR_JOB_FAILED_REASON,
    ATTR_JOB_FINISHED_TIMESTAMP,
    ATTR_JOB_NAME,
    ATTR_JOB_PARENT_KEY,
    ATTR_JOB_PROCESSED_TIMESTAMP,
    ATTR_JOB_REPEAT_KEY,
    ATTR_JOB_TIMESTAMP,
    ATTR_MESSAGING_CONSUMER_ID,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_MESSAGE_ID,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_QUEUE_NAME,
    ATTR_WORKER_CONCURRENCY,
    ATTR_WORKER_LOCK_DURATION,
    ATTR_WORKER_LOCK_RENEW,
    ATTR_WORKER_NAME,
    ATTR_WORKER_RATE_LIMIT_DURATION,
    ATTR_WORKER_RATE_LIMIT_GROUP,
    ATTR_WORKER_RATE_LIMIT_MAX,
)
from bullmq_instrumentation.observability.mapping import MISSING
from bullmq_instrumentation.observability.propagation import extract_context
from bullmq_instrumentation.observability.tracer import SpanFactory, SpanKindEnum, span_name
from bullmq_instrumentation.observability.tracing import TracedCall, traced_wrapper
from bullmq_instrumentation.producer import CallArguments, options_attributes
from bullmq_instrumentation.registry import OperationDescriptor, WrapperFactory

logger = logging.getLogger(__name__)


@dataclass
class InFlightJob:
    """A job being processed and the consumer call tracing it."""

    job: Any
    call: TracedCall


class InFlightJobs:
    """
    Consumer calls in progress, by job id.

    Entries are added when a consumer span starts and removed right before
    it ends. A later call for the same job id replaces the entry and is the
    only one allowed to remove it.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, InFlightJob] = {}

    def track(self, job_id: str | None, job: Any, call: TracedCall) -> None:
        if job_id is not None:
            self._jobs[job_id] = InFlightJob(job, call)

    def untrack(self, job_id: str | None, call: TracedCall) -> None:
        if job_id is None:
            return
        entry = self._jobs.get(job_id)
        if entry is not None and entry.call is call:
            del self._jobs[job_id]

    def get(self, job_id: Any) -> InFlightJob | None:
        if job_id is None:
            return None
        return self._jobs.get(str(job_id))

    def __len__(self) -> int:
        return len(self._jobs)


def job_attributes(job: JobView) -> dict[str, Any]:
    """Identity and scheduling attributes of a job about to be processed."""
    return {
        ATTR_MESSAGING_MESSAGE_ID: job.id,
        ATTR_JOB_NAME: job.name,
        ATTR_JOB_ATTEMPTS: job.attempts_made,
        ATTR_JOB_TIMESTAMP: job.timestamp,
        ATTR_JOB_DELAY: job.delay,
        ATTR_JOB_REPEAT_KEY: job.repeat_job_key,
        ATTR_JOB_PARENT_KEY: job.parent_key,
        ATTR_QUEUE_NAME: job.queue_name,
    }


def worker_attributes(worker: WorkerView) -> dict[str, Any]:
    """Worker identity and configuration; rate limits only when configured."""
    attributes: dict[str, Any] = {
        ATTR_MESSAGING_CONSUMER_ID: worker.name,
        ATTR_WORKER_NAME: worker.name,
        ATTR_WORKER_CONCURRENCY: worker.concurrency,
        ATTR_WORKER_LOCK_DURATION: worker.lock_duration,
        ATTR_WORKER_LOCK_RENEW: worker.lock_renew_time,
    }
    if worker.limiter is not None:
        attributes[ATTR_WORKER_RATE_LIMIT_MAX] = worker.limiter.max
        attributes[ATTR_WORKER_RATE_LIMIT_DURATION] = worker.limiter.duration
        attributes[ATTR_WORKER_RATE_LIMIT_GROUP] = worker.limiter.group_key
    return attributes


def completion_attributes(job: JobView, error: BaseException | None = None) -> dict[str, Any]:
    """
    Timestamps the queue stored on the job while it ran.

    The failure reason is only reported for an attempt that failed, since
    the queue keeps the reason of an earlier attempt on the job.
    """
    attributes: dict[str, Any] = {}
    if job.processed_on is not None:
        attributes[ATTR_JOB_PROCESSED_TIMESTAMP] = job.processed_on
    if job.finished_on is not None:
        attributes[ATTR_JOB_FINISHED_TIMESTAMP] = job.finished_on
    reason = (job.failed_reason or str(error)) if error is not None else None
    if reason:
        attributes[ATTR_JOB_FAILED_REASON] = reason
    return attributes


def process_job_wrapper(
    descriptor: OperationDescriptor,
    spans: SpanFactory,
    config: InstrumentationConfig,
    in_flight: InFlightJobs,
) -> WrapperFactory:
    """Wrapper factory for the worker's processing entry point (``Worker.processJob``)."""

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        arguments = CallArguments(original)

        def prepare(args: tuple[Any, ...], kwargs: dict[str, Any]) -> TracedCall | None:
            bound = arguments.bind(args, kwargs)
            job = arguments.argument(bound, 1) if bound is not None else MISSING
            if bound is None or not args or job is MISSING or job is None:
                return None
            worker = WorkerView.from_worker(args[0])
            view = JobView.from_job(job)

            # A job without a carrier starts a new trace, whatever is active.
            parent = extract_context(Context(), view.opts, config.carrier_field, config.propagator)

            attributes: dict[str, Any] = {
                ATTR_MESSAGING_SYSTEM: config.messaging_system,
                ATTR_MESSAGING_DESTINATION: view.queue_name,
                ATTR_MESSAGING_OPERATION: "receive",
            }
            attributes.update(job_attributes(view))
            attributes.update(worker_attributes(worker))
            attributes.update(options_attributes(config, view.opts))

            span = spans.start_span(
                span_name(
                    view.queue_name, view.name, f"Worker.{worker.name}", attempt=view.attempt
                ),
                kind=SpanKindEnum.CONSUMER,
                attributes=attributes,
                context=parent,
            )

            def on_finish(span: Span, failed: bool) -> None:
                in_flight.untrack(view.id, call)
                after = JobView.from_job(job)
                for key, value in completion_attributes(after, call.error).items():
                    span.set_attribute(key, value)

            call = TracedCall(
                span,
                trace.set_span_in_context(span, parent),
                bound.args,
                bound.kwargs,
                on_finish=on_finish,
            )
            in_flight.track(view.id, job, call)

            logger.debug(
                "Processing job with consumer span",
                extra={
                    "job_id": view.id,
                    "job_name": view.name,
                    "queue": view.queue_name,
                    "attempt": view.attempt,
                    "worker": worker.name,
                },
            )
            return call

        return traced_wrapper(original, prepare)

    return factory


def job_failure_wrapper(
    descriptor: OperationDescriptor,
    spans: SpanFactory,
    config: InstrumentationConfig,
    in_flight: InFlightJobs,
) -> WrapperFactory:
    """
    Wrapper factory for ``Job.moveToFailed(err, token)``.

    Records ``err`` on the consumer span of the job being failed, then runs
    the original. Calls for jobs that are not being processed only run the
    original.
    """

    def record_failure(
        arguments: CallArguments, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> None:
        bound = arguments.bind(args, kwargs)
        if bound is None or not args:
            return
        error = arguments.argument(bound, 1)
        if not isinstance(error, BaseException):
            return
        job_id = getattr(args[0], "id", None)
        entry = in_flight.get(job_id)
        if entry is None:
            return
        try:
            entry.call.fail(error)
        except Exception as e:
            logger.debug(
                "Could not record job failure on span",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return
        logger.debug(
            "Recorded job failure on consumer span",
            extra={"job_id": str(job_id), "error_type": type(error).__name__},
        )

    def factory(original: Callable[..., Any]) -> Callable[..., Any]:
        arguments = CallArguments(original)

        if inspect.iscoroutinefunction(original):

            @functools.wraps(original)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                record_failure(arguments, args, kwargs)
                return await original(*args, **kwargs)

            return async_wrapper

        @functools.wraps(original)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            record_failure(arguments, args, kwargs)
            return original(*args, **kwargs)

        return sync_wrapper

    return factory


__all__ = [
    "InFlightJob",
    "InFlightJobs",
    "completion_attributes",
    "job_attributes",
    "job_failure_wrapper",
    "process_job_wrapper",
    "worker_attributes",
]
