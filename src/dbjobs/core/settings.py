"""Job settings model shared by the Jobs API 2.0 and 2.1 payload shapes.

A job is either a legacy single-task job (one task descriptor on the job
itself) or a multi-task job (a list of keyed tasks). Task descriptors are a
closed set of variants; exactly one may be attached to a job or task, so each
variant is its own dataclass and parsing rejects payloads that carry more
than one of them.

Compute targets (``new_cluster``) and libraries are kept as opaque mappings.
The only cluster rule enforced here is the worker-count check performed by
``validate_cluster``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, ClassVar, Mapping, Union

from dbjobs.core.errors import PreconditionViolation

MULTI_TASK_FORMAT = "MULTI_TASK"
PAUSE_STATUSES = ("PAUSED", "UNPAUSED")
DEFAULT_JOB_NAME = "Untitled"


def _wire(value: Any) -> Any:
    """Convert a model value into its JSON payload form."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_wire(v) for v in value]
    if isinstance(value, Mapping):
        return {k: _wire(v) for k, v in value.items()}
    return value


def compact_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Drop unset fields the way the API omits empty values."""
    return {
        k: v
        for k, v in payload.items()
        if v is not None and v is not False and v != [] and v != {}
    }


def _as_tuple(value: Any) -> tuple:
    return tuple(value) if value else ()


class _WireModel:
    """Mixin giving flat dataclasses a generic payload round-trip."""

    def to_dict(self) -> dict[str, Any]:
        return compact_payload(
            {f.name: _wire(getattr(self, f.name)) for f in fields(self)}
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]):
        kwargs = {}
        for f in fields(cls):
            if f.name not in payload:
                continue
            value = payload[f.name]
            kwargs[f.name] = tuple(value) if isinstance(value, list) else value
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise PreconditionViolation(f"invalid {cls.__name__}: {exc}") from exc


# --- task descriptors -------------------------------------------------------


@dataclass(frozen=True)
class NotebookTask(_WireModel):
    """Run a workspace notebook."""

    wire_key: ClassVar[str] = "notebook_task"

    notebook_path: str
    base_parameters: Mapping[str, str] | None = None


@dataclass(frozen=True)
class SparkJarTask(_WireModel):
    """Run the main class of a JAR."""

    wire_key: ClassVar[str] = "spark_jar_task"

    jar_uri: str | None = None
    main_class_name: str | None = None
    parameters: tuple[str, ...] = ()


@dataclass(frozen=True)
class SparkPythonTask(_WireModel):
    """Run a Python file."""

    wire_key: ClassVar[str] = "spark_python_task"

    python_file: str
    parameters: tuple[str, ...] = ()


@dataclass(frozen=True)
class SparkSubmitTask(_WireModel):
    """Run spark-submit with raw parameters."""

    wire_key: ClassVar[str] = "spark_submit_task"

    parameters: tuple[str, ...] = ()


@dataclass(frozen=True)
class PythonWheelTask(_WireModel):
    """Run an entry point of a Python wheel."""

    wire_key: ClassVar[str] = "python_wheel_task"

    package_name: str | None = None
    entry_point: str | None = None
    parameters: tuple[str, ...] = ()
    named_parameters: Mapping[str, str] | None = None


@dataclass(frozen=True)
class PipelineTask(_WireModel):
    """Trigger a Delta Live Tables pipeline update."""

    wire_key: ClassVar[str] = "pipeline_task"

    pipeline_id: str


TaskDescriptor = Union[
    NotebookTask,
    SparkJarTask,
    SparkPythonTask,
    SparkSubmitTask,
    PythonWheelTask,
    PipelineTask,
]

TASK_TYPES: dict[str, type] = {
    cls.wire_key: cls
    for cls in (
        NotebookTask,
        SparkJarTask,
        SparkPythonTask,
        SparkSubmitTask,
        PythonWheelTask,
        PipelineTask,
    )
}


def parse_task_descriptor(
    payload: Mapping[str, Any], *, owner: str
) -> TaskDescriptor | None:
    """
    Extract the single task descriptor carried by a job or task payload.

    Args:
        payload: Job settings or task settings payload.
        owner: Label used in error messages (job name or task key).

    Returns:
        The parsed descriptor, or None if the payload carries none.

    Raises:
        PreconditionViolation: If more than one descriptor is present.
    """
    present = [key for key in TASK_TYPES if payload.get(key) is not None]
    if len(present) > 1:
        raise PreconditionViolation(
            f"{owner}: only one of {', '.join(present)} can be specified"
        )
    if not present:
        return None
    key = present[0]
    return TASK_TYPES[key].from_dict(payload[key])


def task_descriptor_payload(task: TaskDescriptor | None) -> dict[str, Any]:
    """Render a descriptor under its wire key (empty when no descriptor)."""
    if task is None:
        return {}
    if TASK_TYPES.get(task.wire_key) is not type(task):
        raise TypeError(f"unsupported task descriptor: {type(task).__name__}")
    return {task.wire_key: task.to_dict()}


# --- policies ---------------------------------------------------------------


@dataclass(frozen=True)
class EmailNotifications(_WireModel):
    """Recipients notified on run start, success and failure."""

    on_start: tuple[str, ...] = ()
    on_success: tuple[str, ...] = ()
    on_failure: tuple[str, ...] = ()
    no_alert_for_skipped_runs: bool = False


@dataclass(frozen=True)
class CronSchedule(_WireModel):
    """Quartz cron schedule of a job."""

    quartz_cron_expression: str
    timezone_id: str
    pause_status: str | None = None

    def __post_init__(self):
        if self.pause_status is not None and self.pause_status not in PAUSE_STATUSES:
            raise PreconditionViolation(
                f"pause_status must be one of {', '.join(PAUSE_STATUSES)}, "
                f"got {self.pause_status!r}"
            )


def validate_cluster(cluster: Mapping[str, Any]) -> None:
    """
    Check an inline cluster spec for the worker-count rule.

    A cluster needs workers (fixed or autoscaled) unless it is configured as
    a single-node cluster with a local Spark master.
    """
    if (cluster.get("num_workers") or 0) > 0 or cluster.get("autoscale"):
        return
    spark_conf = cluster.get("spark_conf") or {}
    profile = spark_conf.get("spark.databricks.cluster.profile")
    master = str(spark_conf.get("spark.master", ""))
    if profile == "singleNode" and master.startswith("local"):
        return
    raise PreconditionViolation(
        "num_workers could be 0 only for single-node clusters. See "
        "https://docs.databricks.com/clusters/single-node.html for more details"
    )


def _check_compute_target(
    existing_cluster_id: str | None,
    new_cluster: Mapping[str, Any] | None,
    *,
    owner: str,
) -> None:
    if existing_cluster_id and new_cluster:
        raise PreconditionViolation(
            f"{owner}: only one of existing_cluster_id, new_cluster can be specified"
        )


# --- tasks and jobs ---------------------------------------------------------


@dataclass(frozen=True)
class JobTaskSettings:
    """One keyed task of a multi-task job."""

    task_key: str
    description: str | None = None
    depends_on: tuple[str, ...] = ()
    existing_cluster_id: str | None = None
    new_cluster: Mapping[str, Any] | None = None
    libraries: tuple[Mapping[str, Any], ...] = ()
    task: TaskDescriptor | None = None
    email_notifications: EmailNotifications | None = None
    timeout_seconds: int | None = None
    max_retries: int | None = None
    min_retry_interval_millis: int | None = None
    retry_on_timeout: bool = False

    def __post_init__(self):
        _check_compute_target(
            self.existing_cluster_id,
            self.new_cluster,
            owner=f"task {self.task_key}",
        )

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "task_key": self.task_key,
            "description": self.description,
            "depends_on": [{"task_key": key} for key in self.depends_on],
            "existing_cluster_id": self.existing_cluster_id,
            "new_cluster": _wire(self.new_cluster),
            "libraries": _wire(self.libraries),
            **task_descriptor_payload(self.task),
            "email_notifications": _wire(self.email_notifications),
            "timeout_seconds": self.timeout_seconds,
            "max_retries": self.max_retries,
            "min_retry_interval_millis": self.min_retry_interval_millis,
            "retry_on_timeout": self.retry_on_timeout,
        }
        return compact_payload(payload)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> JobTaskSettings:
        task_key = payload.get("task_key") or ""
        notifications = payload.get("email_notifications")
        return cls(
            task_key=task_key,
            description=payload.get("description"),
            depends_on=tuple(
                dep["task_key"] for dep in payload.get("depends_on") or []
            ),
            existing_cluster_id=payload.get("existing_cluster_id"),
            new_cluster=payload.get("new_cluster"),
            libraries=_as_tuple(payload.get("libraries")),
            task=parse_task_descriptor(payload, owner=f"task {task_key}"),
            email_notifications=(
                EmailNotifications.from_dict(notifications) if notifications else None
            ),
            timeout_seconds=payload.get("timeout_seconds"),
            max_retries=payload.get("max_retries"),
            min_retry_interval_millis=payload.get("min_retry_interval_millis"),
            retry_on_timeout=bool(payload.get("retry_on_timeout", False)),
        )


@dataclass(frozen=True)
class JobSettings:
    """
    Desired configuration of a Databricks job.

    Legacy jobs use ``task`` (plus the job-level compute target); multi-task
    jobs use ``tasks``. ``format`` is reported by the service and is set to
    ``MULTI_TASK`` for jobs created through the 2.1 API.
    """

    name: str = DEFAULT_JOB_NAME
    existing_cluster_id: str | None = None
    new_cluster: Mapping[str, Any] | None = None
    libraries: tuple[Mapping[str, Any], ...] = ()
    task: TaskDescriptor | None = None
    tasks: tuple[JobTaskSettings, ...] = ()
    format: str | None = None
    timeout_seconds: int | None = None
    max_retries: int | None = None
    min_retry_interval_millis: int | None = None
    retry_on_timeout: bool = False
    schedule: CronSchedule | None = None
    max_concurrent_runs: int = 1
    email_notifications: EmailNotifications | None = None

    def __post_init__(self):
        _check_compute_target(
            self.existing_cluster_id, self.new_cluster, owner=f"job {self.name}"
        )
        if self.max_concurrent_runs < 1:
            raise PreconditionViolation(
                "max_concurrent_runs must be at least 1, "
                f"got {self.max_concurrent_runs}"
            )

    @property
    def task_keys(self) -> list[str]:
        return [t.task_key for t in self.tasks]

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "name": self.name,
            "existing_cluster_id": self.existing_cluster_id,
            "new_cluster": _wire(self.new_cluster),
            "libraries": _wire(self.libraries),
            **task_descriptor_payload(self.task),
            "tasks": _wire(self.tasks),
            "format": self.format,
            "timeout_seconds": self.timeout_seconds,
            "max_retries": self.max_retries,
            "min_retry_interval_millis": self.min_retry_interval_millis,
            "retry_on_timeout": self.retry_on_timeout,
            "schedule": _wire(self.schedule),
            "max_concurrent_runs": self.max_concurrent_runs,
            "email_notifications": _wire(self.email_notifications),
        }
        return compact_payload(payload)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> JobSettings:
        name = payload.get("name") or DEFAULT_JOB_NAME
        schedule = payload.get("schedule")
        notifications = payload.get("email_notifications")
        return cls(
            name=name,
            existing_cluster_id=payload.get("existing_cluster_id"),
            new_cluster=payload.get("new_cluster"),
            libraries=_as_tuple(payload.get("libraries")),
            task=parse_task_descriptor(payload, owner=f"job {name}"),
            tasks=tuple(
                JobTaskSettings.from_dict(t) for t in payload.get("tasks") or []
            ),
            format=payload.get("format"),
            timeout_seconds=payload.get("timeout_seconds"),
            max_retries=payload.get("max_retries"),
            min_retry_interval_millis=payload.get("min_retry_interval_millis"),
            retry_on_timeout=bool(payload.get("retry_on_timeout", False)),
            schedule=CronSchedule.from_dict(schedule) if schedule else None,
            max_concurrent_runs=payload.get("max_concurrent_runs", 1),
            email_notifications=(
                EmailNotifications.from_dict(notifications) if notifications else None
            ),
        )


def normalize(settings: JobSettings) -> JobSettings:
    """
    Return settings with tasks sorted by task key.

    The service does not preserve task order, so both what we send and what
    we read back go through here before being compared.
    """
    if not settings.tasks:
        return settings
    ordered = tuple(sorted(settings.tasks, key=lambda t: t.task_key))
    return replace(settings, tasks=ordered)


def load_settings(path: Path) -> JobSettings:
    """
    Load job settings from a JSON file in the Jobs API payload shape.

    Both a bare settings object and a ``{"settings": {...}}`` wrapper (the
    shape returned by ``/jobs/get``) are accepted.
    """
    try:
        payload = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise PreconditionViolation(
            f"Cannot read job settings from {path}: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise PreconditionViolation(f"Job settings in {path} must be a JSON object.")
    if isinstance(payload.get("settings"), dict):
        payload = payload["settings"]
    try:
        return JobSettings.from_dict(payload)
    except (AttributeError, KeyError, TypeError) as exc:
        raise PreconditionViolation(
            f"Malformed job settings in {path}: {exc!r}"
        ) from exc
