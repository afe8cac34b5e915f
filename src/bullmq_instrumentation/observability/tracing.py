"""
Run a wrapped call inside a span's context.

``traced_wrapper`` builds the function that replaces an original operation.
For every call it asks a *prepare* callback for a ``TracedCall`` (the started
span, the context to run under, and possibly rewritten arguments), runs the
original inside that context, and guarantees the span is ended exactly once.

Example:
    >>> def prepare(args, kwargs):
    ...     span = factory.start_span("emails.welcome Queue.add", SpanKindEnum.PRODUCER)
    ...     return TracedCall(span, trace.set_span_in_context(span), args, kwargs)
    >>>
    >>> Queue.add = traced_wrapper(Queue.add, prepare)
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import context as otel_context
from opentelemetry.context import Context
from opentelemetry.trace import Span

from bullmq_instrumentation.observability.tracer import set_error

logger = logging.getLogger(__name__)

ResultHook = Callable[[Span, Any], None]
FinishHook = Callable[[Span, bool], None]


@dataclass
class TracedCall:
    """
    One in-flight call of a wrapped operation.

    Attributes:
        span: Started span owned by this call
        context: Context the original runs under (usually the span's)
        args: Positional arguments for the original
        kwargs: Keyword arguments for the original
        on_result: Called with the result when the original returns
        on_finish: Called with ``failed`` right before the span ends
        error: The error recorded on the span, if any
    """

    span: Span
    context: Context
    args: tuple[Any, ...]
    kwargs: dict[str, Any] = field(default_factory=dict)
    on_result: ResultHook | None = None
    on_finish: FinishHook | None = None
    failed: bool = False
    error: BaseException | None = None

    def succeeded(self, result: Any) -> None:
        if self.on_result is None:
            return
        try:
            self.on_result(self.span, result)
        except Exception as e:
            logger.debug(
                "Could not record call result on span",
                extra={"error": str(e), "error_type": type(e).__name__},
            )

    def fail(self, error: BaseException) -> None:
        """Record ``error`` on the span; the same error is only recorded once."""
        if error is self.error:
            return
        self.failed = True
        self.error = error
        set_error(self.span, error)

    def finish(self) -> None:
        try:
            if self.on_finish is not None:
                self.on_finish(self.span, self.failed)
        except Exception as e:
            logger.debug(
                "Could not finalize span attributes",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
        finally:
            self.span.end()


Prepare = Callable[[tuple[Any, ...], dict[str, Any]], TracedCall | None]


def _prepare_safely(
    prepare: Prepare, args: tuple[Any, ...], kwargs: dict[str, Any]
) -> TracedCall | None:
    try:
        return prepare(args, kwargs)
    except Exception as e:
        logger.warning(
            "Instrumentation failed to prepare call, running it untraced",
            exc_info=True,
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return None


def traced_wrapper(original: Callable[..., Any], prepare: Prepare) -> Callable[..., Any]:
    """
    Wrap ``original`` so each call runs inside the span ``prepare`` starts.

    The wrapper is a coroutine function when the original is one. Errors
    raised by the original (including ``asyncio.CancelledError``) are
    recorded on the span and re-raised unchanged. When ``prepare`` returns
    None, or fails, the original is called untouched.

    Args:
        original: The operation being replaced
        prepare: Builds the TracedCall from the call's arguments

    Returns:
        The wrapper function
    """

    if inspect.iscoroutinefunction(original):

        @functools.wraps(original)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            call = _prepare_safely(prepare, args, kwargs)
            if call is None:
                return await original(*args, **kwargs)

            token = otel_context.attach(call.context)
            try:
                result = await original(*call.args, **call.kwargs)
                call.succeeded(result)
                return result
            except BaseException as e:
                call.fail(e)
                raise
            finally:
                otel_context.detach(token)
                call.finish()

        return async_wrapper

    @functools.wraps(original)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        call = _prepare_safely(prepare, args, kwargs)
        if call is None:
            return original(*args, **kwargs)

        token = otel_context.attach(call.context)
        try:
            result = original(*call.args, **call.kwargs)
            call.succeeded(result)
            return result
        except BaseException as e:
            call.fail(e)
            raise
        finally:
            otel_context.detach(token)
            call.finish()

    return sync_wrapper


__all__ = [
    "TracedCall",
    "traced_wrapper",
]
