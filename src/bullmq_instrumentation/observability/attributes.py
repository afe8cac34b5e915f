"""
Standard span attributes for the BullMQ instrumentation.

Generic messaging attributes follow the OpenTelemetry semantic conventions.
Everything specific to BullMQ lives under the ``messaging.bullmq.`` prefix so
it never collides with the generic ``messaging.*`` keys.

Example:
    >>> from bullmq_instrumentation.observability.attributes import (
    ...     ATTR_JOB_NAME,
    ...     ATTR_QUEUE_NAME,
    ... )
    >>>
    >>> span.set_attribute(ATTR_JOB_NAME, "send-email")
"""

BULLMQ_NAMESPACE = "messaging.bullmq"
"""Prefix shared by every BullMQ-specific attribute."""

_JOB = f"{BULLMQ_NAMESPACE}.job"
_QUEUE = f"{BULLMQ_NAMESPACE}.queue"
_WORKER = f"{BULLMQ_NAMESPACE}.worker"
_FLOW = f"{BULLMQ_NAMESPACE}.flow"

# =============================================================================
# Messaging Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_MESSAGING_SYSTEM = "messaging.system"
"""Messaging system identifier (e.g., 'BullMQ')."""

ATTR_MESSAGING_DESTINATION = "messaging.destination"
"""Destination queue name."""

ATTR_MESSAGING_OPERATION = "messaging.operation"
"""Messaging operation type ('publish' or 'receive')."""

ATTR_MESSAGING_MESSAGE_ID = "messaging.message_id"
"""Identifier of the job returned by the queue."""

ATTR_MESSAGING_MESSAGE_IDS = "messaging.message_ids"
"""Identifiers of the jobs returned by a bulk submission (list of strings)."""

ATTR_MESSAGING_CONSUMER_ID = "messaging.consumer_id"
"""Name of the worker consuming the job."""

ATTR_ERROR_TYPE = "error.type"
"""Class name of the error a failed operation raised."""

# =============================================================================
# Job Attributes
# =============================================================================

ATTR_JOB_NAME = f"{_JOB}.name"
"""Name of the job (string)."""

ATTR_JOB_OPTS = f"{_JOB}.opts"
"""Prefix for the flattened job options."""

ATTR_JOB_ATTEMPTS = f"{_JOB}.attempts"
"""Number of attempts already made when processing started (integer)."""

ATTR_JOB_DELAY = f"{_JOB}.delay"
"""Delay in milliseconds before the job became processable (integer)."""

ATTR_JOB_TIMESTAMP = f"{_JOB}.timestamp"
"""Creation timestamp of the job in milliseconds since epoch."""

ATTR_JOB_PROCESSED_TIMESTAMP = f"{_JOB}.processedOn"
"""When the worker started processing the job."""

ATTR_JOB_FINISHED_TIMESTAMP = f"{_JOB}.finishedOn"
"""When the job completed or failed."""

ATTR_JOB_FAILED_REASON = f"{_JOB}.failedReason"
"""Failure reason stored on the job by the queue."""

ATTR_JOB_REPEAT_KEY = f"{_JOB}.repeatJobKey"
"""Key of the repeat schedule that produced the job."""

ATTR_JOB_PARENT_KEY = f"{_JOB}.parentOpts.parentKey"
"""Fully qualified key of the parent job in a flow."""

ATTR_JOB_WAIT_CHILDREN_KEY = f"{_JOB}.parentOpts.waitChildrenKey"
"""Key of the set the parent uses to wait for its children."""

ATTR_JOB_BULK_NAMES = f"{_JOB}.bulk.names"
"""Names of the jobs submitted in one bulk call (list of strings)."""

ATTR_JOB_BULK_COUNT = f"{_JOB}.bulk.count"
"""Number of jobs submitted in one bulk call (integer)."""

# =============================================================================
# Flow Attributes
# =============================================================================

ATTR_FLOW_NODE_COUNT = f"{_FLOW}.nodeCount"
"""Number of jobs (root and descendants) in a flow submission."""

# =============================================================================
# Queue Attributes
# =============================================================================

ATTR_QUEUE_NAME = f"{_QUEUE}.name"
"""Name of the queue the job belongs to."""

# =============================================================================
# Worker Attributes
# =============================================================================

ATTR_WORKER_NAME = f"{_WORKER}.name"
"""Name of the worker processing the job."""

ATTR_WORKER_CONCURRENCY = f"{_WORKER}.concurrency"
"""Maximum number of jobs the worker runs at once."""

ATTR_WORKER_LOCK_DURATION = f"{_WORKER}.lockDuration"
"""Lock duration in milliseconds."""

ATTR_WORKER_LOCK_RENEW = f"{_WORKER}.lockRenewTime"
"""Lock renewal interval in milliseconds."""

ATTR_WORKER_RATE_LIMIT_MAX = f"{_WORKER}.rateLimiter.max"
"""Maximum jobs per rate limit window."""

ATTR_WORKER_RATE_LIMIT_DURATION = f"{_WORKER}.rateLimiter.duration"
"""Rate limit window in milliseconds."""

ATTR_WORKER_RATE_LIMIT_GROUP = f"{_WORKER}.rateLimiter.groupKey"
"""Group key used by the rate limiter."""


__all__ = [
    "BULLMQ_NAMESPACE",
    # Messaging
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_MESSAGING_MESSAGE_ID",
    "ATTR_MESSAGING_MESSAGE_IDS",
    "ATTR_MESSAGING_CONSUMER_ID",
    "ATTR_ERROR_TYPE",
    # Job
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
    # Flow
    "ATTR_FLOW_NODE_COUNT",
    # Queue
    "ATTR_QUEUE_NAME",
    # Worker
    "ATTR_WORKER_NAME",
    "ATTR_WORKER_CONCURRENCY",
    "ATTR_WORKER_LOCK_DURATION",
    "ATTR_WORKER_LOCK_RENEW",
    "ATTR_WORKER_RATE_LIMIT_MAX",
    "ATTR_WORKER_RATE_LIMIT_DURATION",
    "ATTR_WORKER_RATE_LIMIT_GROUP",
]
