"""
Unit tests for attribute flattening and cleaning.

Tests for:
- flatten_attributes() over mappings, pydantic models and dataclasses
- MISSING vs None handling
- drop_invalid_attributes()
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

from bullmq_instrumentation.observability.mapping import (
    MISSING,
    drop_invalid_attributes,
    flatten_attributes,
)


class Backoff(BaseModel):
    kind: str = Field(alias="type")
    delay: int


@dataclass
class Limiter:
    max: int
    duration: int


class TestMissing:
    """Tests for the MISSING marker."""

    def test_is_falsy(self):
        assert not MISSING

    def test_repr(self):
        assert repr(MISSING) == "MISSING"

    def test_is_singleton(self):
        assert type(MISSING)() is MISSING


class TestFlattenAttributes:
    """Tests for flatten_attributes()."""

    def test_nested_mapping(self):
        """Each leaf of a nested mapping gets a dotted key."""
        result = flatten_attributes(
            "job.opts",
            {"attempts": 3, "backoff": {"type": "exponential", "delay": 1000}},
        )

        assert result == {
            "job.opts.attempts": 3,
            "job.opts.backoff.type": "exponential",
            "job.opts.backoff.delay": 1000,
        }

    def test_top_level_leaf_uses_bare_prefix(self):
        assert flatten_attributes("job.delay", 500) == {"job.delay": 500}

    def test_missing_leaves_are_dropped(self):
        result = flatten_attributes("opts", {"a": MISSING, "b": 1})

        assert result == {"opts.b": 1}

    def test_none_leaves_are_kept(self):
        """None is a value: the mapper keeps it, attribute cleaning drops it later."""
        result = flatten_attributes("opts", {"jobId": None})

        assert result == {"opts.jobId": None}

    def test_top_level_missing_gives_nothing(self):
        assert flatten_attributes("opts", MISSING) == {}

    def test_lists_are_leaves(self):
        result = flatten_attributes("opts", {"tags": ["a", "b"]})

        assert result == {"opts.tags": ["a", "b"]}

    def test_pydantic_model_uses_aliases(self):
        result = flatten_attributes("opts.backoff", Backoff(type="fixed", delay=5))

        assert result == {"opts.backoff.type": "fixed", "opts.backoff.delay": 5}

    def test_dataclass(self):
        result = flatten_attributes("worker.limiter", Limiter(max=10, duration=1000))

        assert result == {"worker.limiter.max": 10, "worker.limiter.duration": 1000}

    def test_empty_prefix(self):
        assert flatten_attributes("", {"a": {"b": 1}}) == {"a.b": 1}

    def test_non_string_keys_are_stringified(self):
        assert flatten_attributes("opts", {1: "x"}) == {"opts.1": "x"}


class TestDropInvalidAttributes:
    """Tests for drop_invalid_attributes()."""

    def test_keeps_primitives(self):
        attributes = {"s": "x", "b": True, "i": 1, "f": 1.5}

        assert drop_invalid_attributes(attributes) == attributes

    def test_drops_none(self):
        assert drop_invalid_attributes({"a": None, "b": 1}) == {"b": 1}

    def test_drops_mappings_and_objects(self):
        assert drop_invalid_attributes({"a": {"x": 1}, "b": object()}) == {}

    def test_homogeneous_sequences_become_lists(self):
        result = drop_invalid_attributes({"ids": ("1", "2"), "counts": [1, 2]})

        assert result == {"ids": ["1", "2"], "counts": [1, 2]}

    def test_drops_mixed_sequences(self):
        assert drop_invalid_attributes({"mixed": [1, "a"]}) == {}

    def test_drops_sequences_of_objects(self):
        assert drop_invalid_attributes({"nested": [{"a": 1}]}) == {}

    def test_keeps_empty_sequence(self):
        assert drop_invalid_attributes({"names": []}) == {"names": []}

    def test_drops_empty_and_non_string_keys(self):
        assert drop_invalid_attributes({"": 1, 2: "x", "ok": 3}) == {"ok": 3}

    def test_does_not_mutate_input(self):
        attributes = {"a": None}

        drop_invalid_attributes(attributes)

        assert attributes == {"a": None}
