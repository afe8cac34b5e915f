"""
Interception registry for wrapping and unwrapping collaborator operations.

The registry replaces a named attribute on a target (a class or module) with a
wrapper built from the original, remembers exactly what it replaced, and puts
it back on unwrap. It is the only component that mutates the collaborator.

Responsibilities:
- Wrap an operation once (wrapping an already wrapped operation is a no-op)
- Restore the exact previous attribute on unwrap
- Unwrap everything in reverse wrap order
- Resolve operation descriptors against a collaborator module, skipping and
  logging the ones that do not exist

Example:
    >>> registry = InterceptionRegistry()
    >>> registry.wrap(Queue, "add", lambda original: traced_add(original))
    True
    >>> registry.unwrap(Queue, "add")
    True
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from bullmq_instrumentation.exceptions import MissingTargetError

logger = logging.getLogger(__name__)

ORIGINAL_ATTRIBUTE = "__bullmq_instrumentation_original__"
"""Set on every wrapper; points at the wrapped original."""

WrapperFactory = Callable[[Callable[..., Any]], Callable[..., Any]]
"""Builds a wrapper from the original callable."""


class OperationKind(Enum):
    """
    How an operation is instrumented.

    Values:
        PRODUCER_ADD: Single job submission
        PRODUCER_BULK_ADD: Batch of jobs submitted in one call
        FLOW_ADD: Job tree submitted in one call
        FLOW_BULK_ADD: Several job trees submitted in one call
        CONSUMER_PROCESS: Worker entry point processing one job
        CONSUMER_FAILURE: Job failure handed to the queue while it is processed
        LOCK_RENEWAL: Lock renewal for the jobs a worker is processing
        LIFECYCLE_EVENT: Secondary job action recorded as a span event
    """

    PRODUCER_ADD = "producer_add"
    PRODUCER_BULK_ADD = "producer_bulk_add"
    FLOW_ADD = "flow_add"
    FLOW_BULK_ADD = "flow_bulk_add"
    CONSUMER_PROCESS = "consumer_process"
    CONSUMER_FAILURE = "consumer_failure"
    LOCK_RENEWAL = "lock_renewal"
    LIFECYCLE_EVENT = "lifecycle_event"


@dataclass(frozen=True)
class OperationDescriptor:
    """
    Identifies one wrapped operation.

    Attributes:
        role: Attribute of the collaborator module holding the target class
            (e.g. "Queue")
        operation: Name of the method to wrap (e.g. "addBulk")
        kind: How the operation is instrumented
    """

    role: str
    operation: str
    kind: OperationKind

    @property
    def label(self) -> str:
        """Operation label used in span names, e.g. ``"Queue.add"``."""
        return f"{self.role}.{self.operation}"


WrapperConstructor = Callable[[OperationDescriptor], WrapperFactory]
"""Builds the wrapper factory for one descriptor."""


@dataclass
class _WrapRecord:
    target: Any
    operation: str
    previous: Any
    owned: bool


def _target_name(target: Any) -> str:
    name = getattr(target, "__qualname__", None) or getattr(target, "__name__", None)
    return name or repr(target)


def is_wrapper(value: Any) -> bool:
    """Return True if ``value`` is a wrapper installed by this package."""
    return ORIGINAL_ATTRIBUTE in getattr(value, "__dict__", {})


def resolve_target(module: Any, role: str) -> Any:
    """
    Look up the class playing ``role`` in a collaborator module.

    Raises:
        MissingTargetError: If the module has no such attribute
    """
    target = getattr(module, role, None)
    if target is None:
        raise MissingTargetError(role)
    return target


class InterceptionRegistry:
    """
    Table of active wraps, owned by one instrumentation instance.

    Not safe for concurrent use: enable/disable are expected to run from a
    single control thread.
    """

    def __init__(self) -> None:
        self._records: list[_WrapRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def is_wrapped(self, target: Any, operation: str) -> bool:
        """Return True if ``target.<operation>`` is currently a wrapper."""
        return is_wrapper(getattr(target, operation, None))

    def wrapped(self) -> list[tuple[Any, str]]:
        """Return the (target, operation) pairs wrapped by this registry, in wrap order."""
        return [(record.target, record.operation) for record in self._records]

    def wrap(self, target: Any, operation: str, wrapper_factory: WrapperFactory) -> bool:
        """
        Replace ``target.<operation>`` with ``wrapper_factory(original)``.

        Args:
            target: Class or module owning the operation
            operation: Attribute name
            wrapper_factory: Called once with the original callable

        Returns:
            True if a wrap was installed, False if the operation was already
            wrapped

        Raises:
            MissingTargetError: If the operation does not exist or is not
                callable
        """
        name = _target_name(target)
        try:
            previous = inspect.getattr_static(target, operation)
        except AttributeError:
            raise MissingTargetError(name, operation) from None
        original = getattr(target, operation)
        if not callable(original):
            raise MissingTargetError(name, operation)

        if is_wrapper(original):
            logger.debug(
                "Operation already wrapped, skipping",
                extra={"target": name, "operation": operation},
            )
            return False

        wrapper = wrapper_factory(original)
        setattr(wrapper, ORIGINAL_ATTRIBUTE, original)
        owned = operation in getattr(target, "__dict__", {})
        setattr(target, operation, wrapper)
        self._records.append(_WrapRecord(target, operation, previous, owned))

        logger.debug("Wrapped operation", extra={"target": name, "operation": operation})
        return True

    def unwrap(self, target: Any, operation: str) -> bool:
        """
        Restore the attribute that ``wrap`` replaced.

        An inherited operation is removed from the target again, so lookup
        falls back to the base class exactly as before.

        Returns:
            True if a wrap was removed, False if this registry had not
            wrapped the operation
        """
        for index in range(len(self._records) - 1, -1, -1):
            record = self._records[index]
            if record.target is target and record.operation == operation:
                break
        else:
            logger.debug(
                "Operation not wrapped by this registry, nothing to unwrap",
                extra={"target": _target_name(target), "operation": operation},
            )
            return False

        if record.owned:
            setattr(target, operation, record.previous)
        else:
            delattr(target, operation)
        del self._records[index]

        logger.debug(
            "Unwrapped operation",
            extra={"target": _target_name(target), "operation": operation},
        )
        return True

    def unwrap_all(self) -> int:
        """Unwrap every operation in reverse wrap order; returns how many were removed."""
        count = 0
        for record in reversed(list(self._records)):
            if self.unwrap(record.target, record.operation):
                count += 1
        return count

    def wrap_all(
        self,
        module: Any,
        descriptors: Iterable[OperationDescriptor],
        constructors: Mapping[OperationKind, WrapperConstructor],
    ) -> list[OperationDescriptor]:
        """
        Wrap every descriptor that exists on ``module``.

        Missing classes or operations (a queue library version that does not
        have them) are logged and skipped; the remaining descriptors are
        still wrapped.

        Args:
            module: Collaborator namespace holding the target classes
            descriptors: Operations to wrap
            constructors: Interception table from operation kind to the
                constructor of its wrapper factory

        Returns:
            The descriptors that were wrapped
        """
        wrapped: list[OperationDescriptor] = []
        for descriptor in descriptors:
            constructor = constructors.get(descriptor.kind)
            if constructor is None:
                logger.warning(
                    "No wrapper registered for operation kind, skipping",
                    extra={"operation": descriptor.label, "kind": descriptor.kind.value},
                )
                continue
            try:
                target = resolve_target(module, descriptor.role)
                if self.wrap(target, descriptor.operation, constructor(descriptor)):
                    wrapped.append(descriptor)
            except MissingTargetError as e:
                logger.warning(
                    f"Cannot instrument {descriptor.label}: {e}",
                    extra={"role": descriptor.role, "operation": descriptor.operation},
                )
        return wrapped


__all__ = [
    "ORIGINAL_ATTRIBUTE",
    "InterceptionRegistry",
    "OperationDescriptor",
    "OperationKind",
    "WrapperConstructor",
    "WrapperFactory",
    "is_wrapper",
    "resolve_target",
]
