"""
The instrumentation instance: enable/disable lifecycle and operation table.

Example:
    >>> from opentelemetry.sdk.trace import TracerProvider
    >>> from bullmq_instrumentation import BullMQInstrumentation
    >>>
    >>> instrumentation = BullMQInstrumentation(tracer_provider=TracerProvider())
    >>> await queue.add("welcome", {"user": 42})   # traced
    >>> instrumentation.disable()
    >>> await queue.add("welcome", {"user": 42})   # untraced, untouched
"""

from __future__ import annotations

import functools
import importlib
import logging
from collections.abc import Callable, Iterable, Mapping
from types import TracebackType
from typing import Any

from opentelemetry.trace import TracerProvider

from bullmq_instrumentation.config import InstrumentationConfig
from bullmq_instrumentation.consumer import InFlightJobs, job_failure_wrapper, process_job_wrapper
from bullmq_instrumentation.exceptions import CollaboratorNotFoundError
from bullmq_instrumentation.lifecycle import lifecycle_event_wrapper, lock_renewal_wrapper
from bullmq_instrumentation.observability.tracer import SpanFactory
from bullmq_instrumentation.producer import (
    flow_add_bulk_wrapper,
    flow_add_wrapper,
    queue_add_bulk_wrapper,
    queue_add_wrapper,
)
from bullmq_instrumentation.protocols import CollaboratorModule
from bullmq_instrumentation.registry import (
    InterceptionRegistry,
    OperationDescriptor,
    OperationKind,
    WrapperConstructor,
    WrapperFactory,
)

logger = logging.getLogger(__name__)

DEFAULT_MODULE_NAME = "bullmq"

DEFAULT_OPERATIONS: tuple[OperationDescriptor, ...] = (
    OperationDescriptor("Queue", "add", OperationKind.PRODUCER_ADD),
    OperationDescriptor("Queue", "addBulk", OperationKind.PRODUCER_BULK_ADD),
    OperationDescriptor("FlowProducer", "add", OperationKind.FLOW_ADD),
    OperationDescriptor("FlowProducer", "addBulk", OperationKind.FLOW_BULK_ADD),
    OperationDescriptor("Worker", "processJob", OperationKind.CONSUMER_PROCESS),
    OperationDescriptor("Job", "moveToFailed", OperationKind.CONSUMER_FAILURE),
    OperationDescriptor("Worker", "extendLocks", OperationKind.LOCK_RENEWAL),
    OperationDescriptor("LockManager", "_extend_locks", OperationKind.LOCK_RENEWAL),
    OperationDescriptor("Job", "remove", OperationKind.LIFECYCLE_EVENT),
    OperationDescriptor("Job", "retry", OperationKind.LIFECYCLE_EVENT),
    OperationDescriptor("Job", "moveToDelayed", OperationKind.LIFECYCLE_EVENT),
)
"""Operations wrapped on the ``bullmq`` package, in wrap order."""

WrapperBuilder = Callable[..., WrapperFactory]

WRAPPER_BUILDERS: Mapping[OperationKind, WrapperBuilder] = {
    OperationKind.PRODUCER_ADD: queue_add_wrapper,
    OperationKind.PRODUCER_BULK_ADD: queue_add_bulk_wrapper,
    OperationKind.FLOW_ADD: flow_add_wrapper,
    OperationKind.FLOW_BULK_ADD: flow_add_bulk_wrapper,
    OperationKind.CONSUMER_PROCESS: process_job_wrapper,
    OperationKind.CONSUMER_FAILURE: job_failure_wrapper,
    OperationKind.LOCK_RENEWAL: lock_renewal_wrapper,
    OperationKind.LIFECYCLE_EVENT: lifecycle_event_wrapper,
}
"""Interception table: how each kind of operation is wrapped."""

JOB_TRACKING_KINDS = frozenset(
    {OperationKind.CONSUMER_PROCESS, OperationKind.CONSUMER_FAILURE, OperationKind.LOCK_RENEWAL}
)
"""Kinds whose builders also share the instance's InFlightJobs."""


class BullMQInstrumentation:
    """
    Traces job submission and processing of a BullMQ-compatible queue library.

    One instance owns one interception registry. ``enable()`` wraps every
    operation of the table that exists in the collaborator module,
    ``disable()`` restores every original. Both are idempotent.

    Args:
        config: InstrumentationConfig or a plain mapping of its fields.
            With ``enabled=True`` (the default) the instance enables itself.
        tracer_provider: Provider for the spans. None uses the global one.
        module: Namespace holding ``Queue``, ``FlowProducer``, ``Worker``,
            ``Job`` and optionally ``LockManager``. None imports ``bullmq``
            on ``enable()``.
        extra_operations: Descriptors wrapped in addition to
            DEFAULT_OPERATIONS

    Example:
        >>> with BullMQInstrumentation({"enabled": False}, module=my_queue_lib) as inst:
        ...     assert inst.is_enabled
    """

    def __init__(
        self,
        config: InstrumentationConfig | Mapping[str, Any] | None = None,
        *,
        tracer_provider: TracerProvider | None = None,
        module: Any | None = None,
        extra_operations: Iterable[OperationDescriptor] = (),
    ) -> None:
        if isinstance(config, InstrumentationConfig):
            self._config = config
        else:
            self._config = InstrumentationConfig.from_mapping(config)
        self._tracer_provider = tracer_provider
        self._module = module
        self._operations = (*DEFAULT_OPERATIONS, *extra_operations)
        self._registry = InterceptionRegistry()
        self._instrumented: list[OperationDescriptor] = []
        self._in_flight = InFlightJobs()
        self._enabled = False

        if self._config.enabled:
            self.enable()

    @property
    def config(self) -> InstrumentationConfig:
        return self._config

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def operations(self) -> tuple[OperationDescriptor, ...]:
        """Every descriptor this instance tries to wrap."""
        return self._operations

    def instrumented_operations(self) -> list[OperationDescriptor]:
        """Descriptors actually wrapped by the last ``enable()``."""
        return list(self._instrumented)

    def set_tracer_provider(self, tracer_provider: TracerProvider | None) -> None:
        """Use another tracer provider; re-installs the wraps if enabled."""
        self._tracer_provider = tracer_provider
        if self._enabled:
            self.disable()
            self.enable()

    def _resolve_module(self) -> Any:
        module = self._module
        if module is None:
            try:
                module = importlib.import_module(DEFAULT_MODULE_NAME)
            except ImportError as e:
                raise CollaboratorNotFoundError(DEFAULT_MODULE_NAME) from e
        if not isinstance(module, CollaboratorModule):
            logger.debug(
                "Queue library does not expose every instrumented class",
                extra={"collaborator": getattr(module, "__name__", repr(module))},
            )
        return module

    def _constructors(self) -> dict[OperationKind, WrapperConstructor]:
        from bullmq_instrumentation import __version__

        spans = SpanFactory(
            self._tracer_provider,
            version=__version__,
            extra_attributes=self._config.extra_attributes,
        )
        constructors: dict[OperationKind, WrapperConstructor] = {}
        for kind, builder in WRAPPER_BUILDERS.items():
            if kind in JOB_TRACKING_KINDS:
                builder = functools.partial(builder, in_flight=self._in_flight)
            constructors[kind] = functools.partial(builder, spans=spans, config=self._config)
        return constructors

    def enable(self) -> None:
        """Install every wrap. Calling it again while enabled does nothing."""
        if self._enabled:
            logger.debug("Instrumentation already enabled")
            return
        try:
            module = self._resolve_module()
        except CollaboratorNotFoundError as e:
            logger.warning(f"BullMQ instrumentation not enabled: {e}")
            return

        self._instrumented = self._registry.wrap_all(module, self._operations, self._constructors())
        self._enabled = True
        logger.info(
            "BullMQ instrumentation enabled",
            extra={
                "instrumented": [descriptor.label for descriptor in self._instrumented],
                "skipped": len(self._operations) - len(self._instrumented),
            },
        )

    def disable(self) -> None:
        """Restore every original. Calling it again while disabled does nothing."""
        if not self._enabled:
            logger.debug("Instrumentation already disabled")
            return
        restored = self._registry.unwrap_all()
        self._instrumented = []
        self._enabled = False
        logger.info("BullMQ instrumentation disabled", extra={"restored": restored})

    def __enter__(self) -> BullMQInstrumentation:
        self.enable()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disable()


__all__ = [
    "DEFAULT_MODULE_NAME",
    "DEFAULT_OPERATIONS",
    "JOB_TRACKING_KINDS",
    "WRAPPER_BUILDERS",
    "BullMQInstrumentation",
]
