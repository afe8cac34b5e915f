"""
Attribute mapping for nested job and worker configuration.

Job options and worker options are nested structures (``{"backoff":
{"type": "exponential", "delay": 1000}}``). Span attributes are flat, so the
mapper walks the structure and emits one dotted key per leaf.

Example:
    >>> flatten_attributes("job.opts", {"attempts": 3, "backoff": {"delay": 10}})
    {'job.opts.attempts': 3, 'job.opts.backoff.delay': 10}
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Final

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_PRIMITIVES = (str, bool, int, float)


class _Missing:
    """Marker for a value that was never set.

    Python has no ``undefined``: ``None`` is an explicit value and is kept by
    the mapper, ``MISSING`` is absence and is dropped.
    """

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()


def _children(value: Any) -> Iterable[tuple[str, Any]] | None:
    """Return the (key, child) pairs of a container, or None for a leaf."""
    if isinstance(value, Mapping):
        return ((str(key), child) for key, child in value.items())
    if isinstance(value, BaseModel):
        model_fields = type(value).model_fields
        return ((info.alias or name, getattr(value, name)) for name, info in model_fields.items())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return ((f.name, getattr(value, f.name)) for f in dataclasses.fields(value))
    return None


def _flatten(key: str, value: Any, out: dict[str, Any]) -> None:
    if value is MISSING:
        return
    children = _children(value)
    if children is None:
        out[key] = value
        return
    for name, child in children:
        _flatten(f"{key}.{name}" if key else name, child, out)


def flatten_attributes(prefix: str, value: Any) -> dict[str, Any]:
    """
    Flatten a nested configuration object into dotted attribute keys.

    Mappings, dataclass instances and pydantic models are walked; anything
    else (strings, numbers, lists, None, ...) is a leaf and kept as-is.
    MISSING leaves are dropped. A leaf passed at the top level is emitted
    under the bare prefix.

    Args:
        prefix: Key prefix, e.g. ``"messaging.bullmq.job.opts"``
        value: The object to flatten

    Returns:
        A new dict mapping dotted keys to leaf values
    """
    out: dict[str, Any] = {}
    _flatten(prefix, value, out)
    return out


def _clean_value(value: Any) -> Any:
    if isinstance(value, _PRIMITIVES):
        return value
    if isinstance(value, list | tuple):
        item_types = {type(item) for item in value}
        if len(item_types) > 1:
            return MISSING
        if item_types and not issubclass(next(iter(item_types)), _PRIMITIVES):
            return MISSING
        return list(value)
    return MISSING


def drop_invalid_attributes(attributes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Keep only attributes OpenTelemetry accepts as span attribute values.

    Valid values are str, bool, int, float and homogeneous sequences of those
    (returned as lists). None, mappings and mixed sequences are dropped.

    Args:
        attributes: Candidate attributes

    Returns:
        A new dict with the valid attributes
    """
    cleaned: dict[str, Any] = {}
    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            continue
        clean = _clean_value(value)
        if clean is MISSING:
            if value is not None:
                logger.debug(
                    "Dropping span attribute with unsupported value",
                    extra={"attribute": key, "value_type": type(value).__name__},
                )
            continue
        cleaned[key] = clean
    return cleaned


__all__ = [
    "MISSING",
    "drop_invalid_attributes",
    "flatten_attributes",
]
