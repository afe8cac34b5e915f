"""
Configuration for the BullMQ instrumentation.

This module provides:
- InstrumentationConfig: settings read once when the instrumentation is built
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any

from bullmq_instrumentation.exceptions import ConfigurationError

if TYPE_CHECKING:
    from opentelemetry.propagators.textmap import TextMapPropagator


DEFAULT_CARRIER_FIELD = "headers"
DEFAULT_MESSAGING_SYSTEM = "BullMQ"


@dataclass(frozen=True)
class InstrumentationConfig:
    """
    Configuration for BullMQInstrumentation.

    Attributes:
        enabled: Install the wraps as soon as the instrumentation is
            constructed. When False, call ``enable()`` explicitly.
        carrier_field: Key inside the job options that holds the propagation
            carrier. The queue must store options verbatim for propagation
            to survive the trip to the worker.
        propagator: Propagator used for inject/extract. None means the
            globally configured OpenTelemetry propagator.
        include_job_options: Flatten the job options into
            ``messaging.bullmq.job.opts.*`` span attributes.
        messaging_system: Value of the ``messaging.system`` attribute.
        extra_attributes: Static attributes added to every span.

    Example:
        >>> config = InstrumentationConfig(enabled=False, carrier_field="otel")
        >>> instrumentation = BullMQInstrumentation(config)
        >>> instrumentation.enable()
    """

    enabled: bool = True
    carrier_field: str = DEFAULT_CARRIER_FIELD
    propagator: TextMapPropagator | None = None
    include_job_options: bool = True
    messaging_system: str = DEFAULT_MESSAGING_SYSTEM
    extra_attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.carrier_field, str) or not self.carrier_field:
            raise ConfigurationError("carrier_field must be a non-empty string")
        if not isinstance(self.extra_attributes, Mapping):
            raise ConfigurationError("extra_attributes must be a mapping")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> InstrumentationConfig:
        """
        Build a config from a generic mapping such as a parsed settings file.

        Args:
            mapping: Keys named after the config fields. None gives defaults.

        Returns:
            A new InstrumentationConfig

        Raises:
            ConfigurationError: If the mapping contains unknown keys
        """
        if mapping is None:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**dict(mapping))


__all__ = [
    "DEFAULT_CARRIER_FIELD",
    "DEFAULT_MESSAGING_SYSTEM",
    "InstrumentationConfig",
]
