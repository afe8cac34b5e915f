"""
bullmq_instrumentation - OpenTelemetry tracing for BullMQ job queues.

This library provides:
- Producer spans for Queue.add, Queue.addBulk, FlowProducer.add and
  FlowProducer.addBulk, with trace context propagated in the job options
- Consumer spans for Worker job processing, parented on the producer span
- Span events for lock renewal, removal and retry of running jobs
- Reversible wrapping: disable() restores the queue library untouched
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("bullmq-instrumentation")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from bullmq_instrumentation.config import InstrumentationConfig
from bullmq_instrumentation.exceptions import (
    CarrierError,
    CollaboratorNotFoundError,
    ConfigurationError,
    InstrumentationError,
    MissingTargetError,
)
from bullmq_instrumentation.instrumentation import (
    DEFAULT_OPERATIONS,
    BullMQInstrumentation,
)
from bullmq_instrumentation.models import JobView, RateLimiterView, WorkerView
from bullmq_instrumentation.registry import (
    InterceptionRegistry,
    OperationDescriptor,
    OperationKind,
)

__all__ = [
    "__version__",
    # Instrumentation
    "BullMQInstrumentation",
    "DEFAULT_OPERATIONS",
    "InstrumentationConfig",
    # Registry
    "InterceptionRegistry",
    "OperationDescriptor",
    "OperationKind",
    # Views
    "JobView",
    "RateLimiterView",
    "WorkerView",
    # Exceptions
    "CarrierError",
    "CollaboratorNotFoundError",
    "ConfigurationError",
    "InstrumentationError",
    "MissingTargetError",
]
