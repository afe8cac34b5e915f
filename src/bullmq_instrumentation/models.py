"""
Read-only views over queue library objects.

The instrumentation never relies on the concrete Job or Worker classes. It
reads the handful of fields it needs into these models, accepting both the
camelCase attribute names BullMQ uses and snake_case equivalents, from
objects or plain mappings (flow nodes are mappings).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from bullmq_instrumentation.observability.mapping import MISSING

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_ANONYMOUS_WORKER = "anonymous"


def read_field(source: Any, *names: str) -> Any:
    """Return the first present, non-None value among ``names`` (MISSING if none)."""
    if source is None:
        return MISSING
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name, MISSING)
        else:
            value = getattr(source, name, MISSING)
        if value is not MISSING and value is not None:
            return value
    return MISSING


def _collect(source: Any, model: type[BaseModel]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, info in model.model_fields.items():
        names = (info.alias, name) if info.alias else (name,)
        value = read_field(source, *names)
        if value is not MISSING:
            values[name] = value
    return values


def _validate_lenient(model: type[ModelT], values: dict[str, Any]) -> ModelT:
    """Validate, dropping fields the queue library filled with unexpected types."""
    try:
        return model.model_validate(values)
    except ValidationError as e:
        aliases = {info.alias: name for name, info in model.model_fields.items() if info.alias}
        locations = [error["loc"][0] for error in e.errors() if error["loc"]]
        invalid = {aliases.get(loc, loc) for loc in locations}
        logger.debug(
            "Ignoring unreadable fields",
            extra={"model": model.__name__, "fields": sorted(map(str, invalid))},
        )
        return model.model_validate({k: v for k, v in values.items() if k not in invalid})


class JobView(BaseModel):
    """
    The fields of a job the instrumentation reads.

    Attributes:
        id: Job identifier assigned by the queue
        name: Job name
        queue_name: Name of the queue holding the job
        timestamp: Creation time in milliseconds since epoch
        opts: Job options, including the propagation carrier
        attempts_made: Attempts already made before the current one
        delay: Delay in milliseconds
        processed_on: When processing started
        finished_on: When the job completed or failed
        failed_reason: Failure reason stored by the queue
        parent_key: Fully qualified key of the parent job, for flow children
        repeat_job_key: Key of the repeat schedule that created the job

    Example:
        >>> view = JobView.from_job(job)
        >>> view.attempt
        1
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = None
    name: str | None = None
    queue_name: str | None = Field(default=None, alias="queueName")
    timestamp: int | float | None = None
    opts: dict[str, Any] = Field(default_factory=dict)
    attempts_made: int = Field(default=0, alias="attemptsMade")
    delay: int | float | None = None
    processed_on: int | float | None = Field(default=None, alias="processedOn")
    finished_on: int | float | None = Field(default=None, alias="finishedOn")
    failed_reason: str | None = Field(default=None, alias="failedReason")
    parent_key: str | None = Field(default=None, alias="parentKey")
    repeat_job_key: str | None = Field(default=None, alias="repeatJobKey")

    @field_validator(
        "id", "name", "queue_name", "failed_reason", "parent_key", "repeat_job_key", mode="before"
    )
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("opts", mode="before")
    @classmethod
    def _opts_mapping(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, Mapping):
            return dict(value)
        return {}

    @field_validator("attempts_made", mode="before")
    @classmethod
    def _attempts_int(cls, value: Any) -> Any:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    @classmethod
    def from_job(cls, job: Any) -> Self:
        """
        Read a job object or mapping into a view.

        The queue name falls back to ``job.queue.name`` and the delay to
        ``opts["delay"]`` when the job does not expose them directly.
        """
        values = _collect(job, cls)
        if "queue_name" not in values:
            queue_name = read_field(read_field(job, "queue"), "name")
            if queue_name is MISSING:
                queue_name = read_field(job, "queueQualifiedName")
            if queue_name is not MISSING:
                values["queue_name"] = queue_name
        if "delay" not in values:
            delay = read_field(values.get("opts"), "delay")
            if delay is not MISSING:
                values["delay"] = delay
        return _validate_lenient(cls, values)

    @property
    def attempt(self) -> int:
        """1-based number of the attempt about to run."""
        return self.attempts_made + 1


class RateLimiterView(BaseModel):
    """Rate limiter settings of a worker."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    max: int | None = None
    duration: int | float | None = None
    group_key: str | None = Field(default=None, alias="groupKey")


class WorkerView(BaseModel):
    """
    The worker identity and configuration recorded on consumer spans.

    Attributes:
        name: Worker name (``opts["name"]``, else the worker's name, else
            "anonymous")
        concurrency: Jobs processed at once
        lock_duration: Lock duration in milliseconds
        lock_renew_time: Lock renewal interval in milliseconds
        limiter: Rate limiter settings, None when not configured
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = _ANONYMOUS_WORKER
    concurrency: int | None = None
    lock_duration: int | float | None = Field(default=None, alias="lockDuration")
    lock_renew_time: int | float | None = Field(default=None, alias="lockRenewTime")
    limiter: RateLimiterView | None = None

    @classmethod
    def from_worker(cls, worker: Any) -> Self:
        opts = read_field(worker, "opts")
        opts = opts if isinstance(opts, Mapping) else {}
        values = _collect(opts, cls)
        values.pop("limiter", None)
        for name in ("concurrency", "lock_duration", "lock_renew_time"):
            if name not in values:
                info = cls.model_fields[name]
                value = read_field(worker, *((info.alias, name) if info.alias else (name,)))
                if value is not MISSING:
                    values[name] = value
        name = read_field(opts, "name")
        if name is MISSING:
            name = read_field(worker, "name")
        values["name"] = str(name) if name is not MISSING else _ANONYMOUS_WORKER
        limiter = read_field(opts, "limiter")
        if limiter is not MISSING:
            limiter_values = _collect(limiter, RateLimiterView)
            values["limiter"] = _validate_lenient(RateLimiterView, limiter_values)
        return _validate_lenient(cls, values)


__all__ = [
    "JobView",
    "RateLimiterView",
    "WorkerView",
    "read_field",
]
