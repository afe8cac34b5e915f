"""
Observability building blocks for the BullMQ instrumentation.

- attributes: span attribute names
- mapping: flattening of nested configuration into span attributes
- propagation: trace context inject/extract through job options
- tracer: span factory and naming
"""

from bullmq_instrumentation.observability.attributes import (
    ATTR_ERROR_TYPE,
    ATTR_FLOW_NODE_COUNT,
    ATTR_JOB_ATTEMPTS,
    ATTR_JOB_BULK_COUNT,
    ATTR_JOB_BULK_NAMES,
    ATTR_JOB_DELAY,
    ATTR_JOB_FAILED_REASON,
    ATTR_JOB_FINISHED_TIMESTAMP,
    ATTR_JOB_NAME,
    ATTR_JOB_OPTS,
    ATTR_JOB_PARENT_KEY,
    ATTR_JOB_PROCESSED_TIMESTAMP,
    ATTR_JOB_REPEAT_KEY,
    ATTR_JOB_TIMESTAMP,
    ATTR_JOB_WAIT_CHILDREN_KEY,
    ATTR_MESSAGING_CONSUMER_ID,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_MESSAGE_ID,
    ATTR_MESSAGING_MESSAGE_IDS,
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
    BULLMQ_NAMESPACE,
)
from bullmq_instrumentation.observability.mapping import (
    MISSING,
    drop_invalid_attributes,
    flatten_attributes,
)
from bullmq_instrumentation.observability.propagation import (
    carrier_from,
    extract_context,
    inject_context,
)
from bullmq_instrumentation.observability.tracer import (
    SpanFactory,
    SpanKindEnum,
    set_error,
    span_name,
)

__all__ = [
    # Span factory
    "SpanFactory",
    "SpanKindEnum",
    "set_error",
    "span_name",
    # Mapping
    "MISSING",
    "drop_invalid_attributes",
    "flatten_attributes",
    # Propagation
    "carrier_from",
    "extract_context",
    "inject_context",
    # Attributes
    "BULLMQ_NAMESPACE",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_MESSAGING_MESSAGE_ID",
    "ATTR_MESSAGING_MESSAGE_IDS",
    "ATTR_MESSAGING_CONSUMER_ID",
    "ATTR_ERROR_TYPE",
    "ATTR_JOB_NAME",
    "ATTR_JOB_OPTS",
    "ATTR_JOB_ATTEMPTS",
    "ATTR_JOB_DELAY",
    "ATTR_JOB_TIMESTAMP",
    "ATTR_JOB_PROCESSED_TIMESTAMP",
    "ATTR_JOB_FINISHED_TIMESTAMP",
    "ATTR_JOB_FAILED_REASON",
    "ATTR_JOB_REPEAT_KEY",
    "ATTR_JOB_PARENT_KEY",
    "ATTR_JOB_WAIT_CHILDREN_KEY",
    "ATTR_JOB_BULK_NAMES",
    "ATTR_JOB_BULK_COUNT",
    "ATTR_FLOW_NODE_COUNT",
    "ATTR_QUEUE_NAME",
    "ATTR_WORKER_NAME",
    "ATTR_WORKER_CONCURRENCY",
    "ATTR_WORKER_LOCK_DURATION",
    "ATTR_WORKER_LOCK_RENEW",
    "ATTR_WORKER_RATE_LIMIT_MAX",
    "ATTR_WORKER_RATE_LIMIT_DURATION",
    "ATTR_WORKER_RATE_LIMIT_GROUP",
]
