"""
Trace context propagation through job options.

The carrier is a flat ``dict[str, str]`` stored inside the job options under a
configurable field (``"headers"`` by default). The queue stores job options
verbatim, so whatever the producer injects there reaches the worker.

Example:
    >>> opts = inject_context(message_context, {"attempts": 3})
    >>> opts
    {'attempts': 3, 'headers': {'traceparent': '00-...-01'}}
    >>> parent = extract_context(context.get_current(), opts)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from opentelemetry import context as otel_context
from opentelemetry import propagate
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import TextMapPropagator

from bullmq_instrumentation.config import DEFAULT_CARRIER_FIELD
from bullmq_instrumentation.exceptions import CarrierError

logger = logging.getLogger(__name__)


def _propagator(propagator: TextMapPropagator | None) -> TextMapPropagator:
    return propagator if propagator is not None else propagate.get_global_textmap()


def carrier_from(
    opts: Mapping[str, Any] | None, field: str = DEFAULT_CARRIER_FIELD
) -> dict[str, str]:
    """
    Return a copy of the carrier stored in job options.

    Non-string keys and values are left out. A missing carrier gives an
    empty dict.

    Raises:
        CarrierError: If the field exists but is not a mapping
    """
    if not opts:
        return {}
    raw = opts.get(field)
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise CarrierError(field, f"expected a mapping, got {type(raw).__name__}")
    return {
        key: value
        for key, value in raw.items()
        if isinstance(key, str) and isinstance(value, str)
    }


def inject_context(
    ctx: Context,
    opts: Mapping[str, Any] | None,
    field: str = DEFAULT_CARRIER_FIELD,
    propagator: TextMapPropagator | None = None,
) -> dict[str, Any]:
    """
    Write a trace context into a copy of the job options.

    The options and the carrier are copied, so the caller's objects are never
    mutated and unrelated keys survive. A carrier field that holds something
    other than a mapping is replaced.

    Args:
        ctx: Context whose active span becomes the remote parent
        opts: Job options, may be None
        field: Options key holding the carrier
        propagator: Propagator to use, the global one when None

    Returns:
        New job options with the carrier filled in
    """
    new_opts: dict[str, Any] = dict(opts or {})
    existing = new_opts.get(field)
    carrier: dict[str, Any] = dict(existing) if isinstance(existing, Mapping) else {}
    _propagator(propagator).inject(carrier, context=ctx)
    new_opts[field] = carrier
    return new_opts


def extract_context(
    ctx: Context | None,
    opts: Mapping[str, Any] | None,
    field: str = DEFAULT_CARRIER_FIELD,
    propagator: TextMapPropagator | None = None,
) -> Context:
    """
    Rebuild the producer's context from job options.

    Never raises: a job without a carrier, with a malformed carrier, or with
    a carrier the propagator cannot read yields ``ctx`` unchanged (the
    current context when ``ctx`` is None). Jobs enqueued before the
    instrumentation was enabled therefore still process normally.

    Args:
        ctx: Base context the extracted values are layered onto
        opts: Job options, may be None
        field: Options key holding the carrier
        propagator: Propagator to use, the global one when None

    Returns:
        Context to use as the parent of the consumer span
    """
    base = ctx if ctx is not None else otel_context.get_current()
    try:
        if opts is not None and not isinstance(opts, Mapping):
            raise CarrierError(field, f"job options are a {type(opts).__name__}")
        carrier = carrier_from(opts, field)
        if not carrier:
            return base
        return _propagator(propagator).extract(carrier, context=base)
    except Exception as e:
        logger.debug(
            "Ignoring unusable trace carrier",
            extra={"carrier_field": field, "error": str(e), "error_type": type(e).__name__},
        )
        return base


__all__ = [
    "carrier_from",
    "extract_context",
    "inject_context",
]
