"""
Protocols describing the queue library surface the instrumentation wraps.

Any module-like object exposing ``Queue``, ``FlowProducer``, ``Worker`` and
``Job`` classes with these operations can be instrumented; the real
``bullmq`` package is the default. Lock renewals of the real package go
through its ``LockManager`` class, wrapped when the module exposes one.
Only the operations listed here are ever called through the wraps, always
with the arguments the application passed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class QueueLike(Protocol):
    """A queue producer: ``add`` one job or ``addBulk`` many."""

    name: str

    def add(
        self, name: str, data: Any, opts: Mapping[str, Any] | None = None
    ) -> Awaitable[Any]: ...

    def addBulk(self, jobs: Sequence[Mapping[str, Any]]) -> Awaitable[Any]: ...


@runtime_checkable
class FlowProducerLike(Protocol):
    """A producer of job trees (a parent with nested ``children``)."""

    def add(
        self, flow: Mapping[str, Any], opts: Mapping[str, Any] | None = None
    ) -> Awaitable[Any]: ...

    def addBulk(self, flows: Sequence[Mapping[str, Any]]) -> Awaitable[Any]: ...


@runtime_checkable
class WorkerLike(Protocol):
    """A worker running the user's processor once per delivered job."""

    name: str
    opts: Mapping[str, Any]

    def processJob(self, job: Any, token: str) -> Awaitable[Any]: ...

    def extendLocks(self) -> Awaitable[Any]: ...


@runtime_checkable
class JobLike(Protocol):
    """A delivered job and the lifecycle actions available while it runs."""

    id: Any
    name: str
    opts: Mapping[str, Any]
    attemptsMade: int

    def moveToFailed(self, err: Exception, token: str) -> Awaitable[Any]: ...

    def remove(self) -> Awaitable[Any]: ...

    def retry(self, state: str = "failed") -> Awaitable[Any]: ...


@runtime_checkable
class CollaboratorModule(Protocol):
    """The namespace holding the classes to instrument."""

    Queue: type
    FlowProducer: type
    Worker: type
    Job: type


__all__ = [
    "CollaboratorModule",
    "FlowProducerLike",
    "JobLike",
    "QueueLike",
    "WorkerLike",
]
