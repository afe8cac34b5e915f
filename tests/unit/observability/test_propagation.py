"""
Unit tests for trace context propagation through job options.

Tests for:
- carrier_from()
- inject_context(): copy semantics, carrier field, custom propagator
- extract_context(): round trip and tolerance of malformed carriers
"""

from __future__ import annotations

import pytest
from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from bullmq_instrumentation.exceptions import CarrierError
from bullmq_instrumentation.observability.propagation import (
    carrier_from,
    extract_context,
    inject_context,
)

PROPAGATOR = TraceContextTextMapPropagator()


@pytest.fixture
def span():
    tracer = TracerProvider().get_tracer(__name__)
    span = tracer.start_span("emails.welcome Queue.add")
    yield span
    span.end()


def _traceparent(span) -> str:
    ctx = span.get_span_context()
    return f"00-{ctx.trace_id:032x}-{ctx.span_id:016x}-01"


class TestCarrierFrom:
    """Tests for carrier_from()."""

    def test_missing_options(self):
        assert carrier_from(None) == {}
        assert carrier_from({}) == {}

    def test_missing_field(self):
        assert carrier_from({"attempts": 3}) == {}

    def test_returns_a_copy(self):
        carrier = {"traceparent": "x"}
        opts = {"headers": carrier}

        result = carrier_from(opts)
        result["tracestate"] = "y"

        assert carrier == {"traceparent": "x"}

    def test_drops_non_string_entries(self):
        result = carrier_from({"headers": {"traceparent": "x", "retries": 3}})

        assert result == {"traceparent": "x"}

    def test_custom_field(self):
        assert carrier_from({"otel": {"traceparent": "x"}}, "otel") == {"traceparent": "x"}

    def test_non_mapping_field_raises(self):
        with pytest.raises(CarrierError) as exc_info:
            carrier_from({"headers": "traceparent=x"})

        assert exc_info.value.field == "headers"


class TestInjectContext:
    """Tests for inject_context()."""

    def test_writes_traceparent(self, span):
        opts = inject_context(trace.set_span_in_context(span), None, propagator=PROPAGATOR)

        assert opts["headers"]["traceparent"] == _traceparent(span)

    def test_does_not_mutate_caller_options(self, span):
        original = {"attempts": 3, "headers": {"x-request-id": "abc"}}

        opts = inject_context(trace.set_span_in_context(span), original, propagator=PROPAGATOR)

        assert original == {"attempts": 3, "headers": {"x-request-id": "abc"}}
        assert opts["attempts"] == 3
        assert opts["headers"]["x-request-id"] == "abc"
        assert "traceparent" in opts["headers"]

    def test_replaces_non_mapping_carrier(self, span):
        opts = inject_context(
            trace.set_span_in_context(span), {"headers": "junk"}, propagator=PROPAGATOR
        )

        assert set(opts["headers"]) == {"traceparent"}

    def test_custom_field(self, span):
        opts = inject_context(trace.set_span_in_context(span), {}, "otel", PROPAGATOR)

        assert "traceparent" in opts["otel"]
        assert "headers" not in opts

    def test_uses_global_propagator_by_default(self, span):
        opts = inject_context(trace.set_span_in_context(span), {})

        assert opts["headers"]["traceparent"] == _traceparent(span)

    def test_invalid_context_injects_nothing(self):
        opts = inject_context(otel_context.Context(), {"attempts": 1}, propagator=PROPAGATOR)

        assert opts == {"attempts": 1, "headers": {}}


class TestExtractContext:
    """Tests for extract_context()."""

    def test_round_trip(self, span):
        opts = inject_context(trace.set_span_in_context(span), {}, propagator=PROPAGATOR)

        ctx = extract_context(otel_context.Context(), opts, propagator=PROPAGATOR)
        remote = trace.get_current_span(ctx).get_span_context()

        assert remote.trace_id == span.get_span_context().trace_id
        assert remote.span_id == span.get_span_context().span_id
        assert remote.is_remote

    def test_no_carrier_returns_base(self):
        base = otel_context.Context({"marker": 1})

        assert extract_context(base, {"attempts": 3}) is base
        assert extract_context(base, None) is base

    def test_none_base_uses_current_context(self):
        current = otel_context.get_current()

        assert extract_context(None, {}) is current

    def test_malformed_carrier_returns_base(self):
        base = otel_context.Context()

        assert extract_context(base, {"headers": ["not", "a", "mapping"]}) is base

    def test_non_mapping_options_return_base(self):
        base = otel_context.Context()

        assert extract_context(base, "opts") is base  # type: ignore[arg-type]

    def test_unreadable_traceparent_gives_no_parent(self):
        ctx = extract_context(
            otel_context.Context(), {"headers": {"traceparent": "garbage"}}, propagator=PROPAGATOR
        )

        assert not trace.get_current_span(ctx).get_span_context().is_valid

    def test_propagator_failure_returns_base(self):
        class BrokenPropagator(TraceContextTextMapPropagator):
            def extract(self, carrier, context=None, getter=None):
                raise RuntimeError("broken")

        base = otel_context.Context()
        opts = {"headers": {"traceparent": "x"}}

        assert extract_context(base, opts, propagator=BrokenPropagator()) is base
