"""
Unit tests for the interception registry.

Tests for:
- wrap(): install once, missing targets, non-callables
- unwrap(): exact restoration of owned and inherited operations
- unwrap_all(): reverse order
- wrap_all(): descriptor resolution and skipping of missing targets
"""

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from bullmq_instrumentation.exceptions import MissingTargetError
from bullmq_instrumentation.registry import (
    ORIGINAL_ATTRIBUTE,
    InterceptionRegistry,
    OperationDescriptor,
    OperationKind,
    is_wrapper,
    resolve_target,
)


def _make_target():
    class Base:
        def inherited(self):
            return "base"

    class Target(Base):
        limit = 5

        def run(self, value):
            return f"run:{value}"

        @staticmethod
        def helper():
            return "static"

    return Base, Target


def _tagging(tag, calls=None):
    def factory(original):
        def wrapper(*args, **kwargs):
            if calls is not None:
                calls.append(tag)
            return original(*args, **kwargs)

        return wrapper

    return factory


class TestOperationDescriptor:
    def test_label(self):
        descriptor = OperationDescriptor("Queue", "addBulk", OperationKind.PRODUCER_BULK_ADD)

        assert descriptor.label == "Queue.addBulk"

    def test_is_hashable_and_comparable(self):
        a = OperationDescriptor("Job", "remove", OperationKind.LIFECYCLE_EVENT)
        b = OperationDescriptor("Job", "remove", OperationKind.LIFECYCLE_EVENT)

        assert a == b
        assert len({a, b}) == 1


class TestWrap:
    """Tests for InterceptionRegistry.wrap()."""

    def test_installs_wrapper(self):
        _, Target = _make_target()
        registry = InterceptionRegistry()
        calls = []

        assert registry.wrap(Target, "run", _tagging("traced", calls)) is True

        assert Target().run(1) == "run:1"
        assert calls == ["traced"]
        assert registry.is_wrapped(Target, "run")
        assert len(registry) == 1

    def test_wrapper_points_at_original(self):
        _, Target = _make_target()
        original = Target.run
        registry = InterceptionRegistry()

        registry.wrap(Target, "run", _tagging("traced"))

        assert getattr(Target.run, ORIGINAL_ATTRIBUTE) is original
        assert is_wrapper(Target.run)
        assert not is_wrapper(original)

    def test_second_wrap_is_a_no_op(self):
        _, Target = _make_target()
        registry = InterceptionRegistry()
        calls = []

        registry.wrap(Target, "run", _tagging("first", calls))
        assert registry.wrap(Target, "run", _tagging("second", calls)) is False

        Target().run(1)
        assert calls == ["first"]
        assert len(registry) == 1

    def test_wrap_by_another_registry_is_detected(self):
        _, Target = _make_target()
        first, second = InterceptionRegistry(), InterceptionRegistry()

        first.wrap(Target, "run", _tagging("first"))

        assert second.wrap(Target, "run", _tagging("second")) is False
        first.unwrap(Target, "run")

    def test_missing_operation_raises(self):
        _, Target = _make_target()

        with pytest.raises(MissingTargetError) as exc_info:
            InterceptionRegistry().wrap(Target, "addBulk", _tagging("x"))

        assert exc_info.value.operation == "addBulk"

    def test_non_callable_raises(self):
        _, Target = _make_target()

        with pytest.raises(MissingTargetError):
            InterceptionRegistry().wrap(Target, "limit", _tagging("x"))

    def test_factory_receives_original(self):
        _, Target = _make_target()
        received = []

        def factory(original):
            received.append(original)
            return lambda self, value: "wrapped"

        InterceptionRegistry().wrap(Target, "run", factory)

        assert received[0](Target(), 2) == "run:2"
        assert Target().run(2) == "wrapped"


class TestUnwrap:
    """Tests for InterceptionRegistry.unwrap()."""

    def test_restores_exact_reference(self):
        _, Target = _make_target()
        before = Target.__dict__["run"]
        registry = InterceptionRegistry()

        registry.wrap(Target, "run", _tagging("x"))
        assert registry.unwrap(Target, "run") is True

        assert Target.__dict__["run"] is before
        assert not registry.is_wrapped(Target, "run")
        assert len(registry) == 0

    def test_restores_staticmethod_descriptor(self):
        _, Target = _make_target()
        before = Target.__dict__["helper"]
        registry = InterceptionRegistry()

        registry.wrap(Target, "helper", _tagging("x"))
        registry.unwrap(Target, "helper")

        assert Target.__dict__["helper"] is before
        assert Target.helper() == "static"

    def test_inherited_operation_is_removed_again(self):
        Base, Target = _make_target()
        registry = InterceptionRegistry()

        registry.wrap(Target, "inherited", _tagging("x"))
        assert "inherited" in Target.__dict__
        registry.unwrap(Target, "inherited")

        assert "inherited" not in Target.__dict__
        assert Target.inherited is Base.inherited

    def test_unwrap_unknown_returns_false(self):
        _, Target = _make_target()

        assert InterceptionRegistry().unwrap(Target, "run") is False

    def test_unwrap_twice(self):
        _, Target = _make_target()
        registry = InterceptionRegistry()
        registry.wrap(Target, "run", _tagging("x"))

        assert registry.unwrap(Target, "run") is True
        assert registry.unwrap(Target, "run") is False

    def test_module_level_function(self):
        namespace = SimpleNamespace(send=lambda: "sent")
        before = namespace.send
        registry = InterceptionRegistry()

        registry.wrap(namespace, "send", _tagging("x"))
        registry.unwrap(namespace, "send")

        assert namespace.send is before


class TestUnwrapAll:
    """Tests for InterceptionRegistry.unwrap_all()."""

    def test_reverse_order(self, monkeypatch):
        _, Target = _make_target()
        registry = InterceptionRegistry()
        registry.wrap(Target, "run", _tagging("a"))
        registry.wrap(Target, "inherited", _tagging("b"))
        registry.wrap(Target, "helper", _tagging("c"))
        order = []
        unwrap = registry.unwrap

        def recording_unwrap(target, operation):
            order.append(operation)
            return unwrap(target, operation)

        monkeypatch.setattr(registry, "unwrap", recording_unwrap)

        assert registry.unwrap_all() == 3
        assert order == ["helper", "inherited", "run"]
        assert registry.wrapped() == []

    def test_empty_registry(self):
        assert InterceptionRegistry().unwrap_all() == 0


class TestResolveTarget:
    def test_found(self):
        module = SimpleNamespace(Queue=object)

        assert resolve_target(module, "Queue") is object

    def test_missing(self):
        with pytest.raises(MissingTargetError) as exc_info:
            resolve_target(SimpleNamespace(), "FlowProducer")

        assert exc_info.value.role == "FlowProducer"


class TestWrapAll:
    """Tests for InterceptionRegistry.wrap_all()."""

    def test_wraps_existing_and_skips_missing(self, caplog):
        _, Target = _make_target()
        module = SimpleNamespace(Target=Target)
        descriptors = [
            OperationDescriptor("Target", "run", OperationKind.PRODUCER_ADD),
            OperationDescriptor("Target", "vanished", OperationKind.PRODUCER_ADD),
            OperationDescriptor("Absent", "run", OperationKind.PRODUCER_ADD),
        ]
        constructors = {OperationKind.PRODUCER_ADD: lambda descriptor: _tagging(descriptor.label)}
        registry = InterceptionRegistry()

        with caplog.at_level(logging.WARNING):
            wrapped = registry.wrap_all(module, descriptors, constructors)

        assert wrapped == descriptors[:1]
        assert registry.wrapped() == [(Target, "run")]
        assert "Target.vanished" in caplog.text
        assert "Absent.run" in caplog.text
        registry.unwrap_all()

    def test_skips_kind_without_constructor(self, caplog):
        _, Target = _make_target()
        descriptor = OperationDescriptor("Target", "run", OperationKind.LIFECYCLE_EVENT)
        registry = InterceptionRegistry()

        with caplog.at_level(logging.WARNING):
            wrapped = registry.wrap_all(SimpleNamespace(Target=Target), [descriptor], {})

        assert wrapped == []
        assert not registry.is_wrapped(Target, "run")
        assert "No wrapper registered" in caplog.text

    def test_constructor_gets_descriptor(self):
        _, Target = _make_target()
        seen = []
        descriptor = OperationDescriptor("Target", "run", OperationKind.CONSUMER_PROCESS)

        def constructor(d):
            seen.append(d)
            return _tagging("x")

        registry = InterceptionRegistry()
        constructors = {OperationKind.CONSUMER_PROCESS: constructor}
        registry.wrap_all(SimpleNamespace(Target=Target), [descriptor], constructors)

        assert seen == [descriptor]
        registry.unwrap_all()
