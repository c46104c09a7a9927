"""Core job and run domain models.

This module defines the data structures returned by the Jobs API (Job,
JobRun, RunState) and the adapter interface used by the lifecycle layer to
create, read, replace and delete jobs. It is intentionally free of SDK and
CLI concerns so it can be exercised with simple stubs in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

from dbjobs.core.routing import ApiVersion
from dbjobs.core.settings import JobSettings, compact_payload


@dataclass(frozen=True)
class Job:
    """
    Represents a Databricks job.

    Attributes:
        id: Unique identifier of the Databricks job.
        settings: Job settings as reported by the service. May be None for
                  list responses that omit them.
        creator_user_name: Principal that created the job.
        created_time: Creation time in epoch milliseconds.
    """

    id: int
    settings: JobSettings | None = None
    creator_user_name: str | None = None
    created_time: int | None = None

    @property
    def name(self) -> str:
        return self.settings.name if self.settings else str(self.id)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Job:
        settings = payload.get("settings")
        return cls(
            id=int(payload["job_id"]),
            settings=JobSettings.from_dict(settings) if settings else None,
            creator_user_name=payload.get("creator_user_name"),
            created_time=payload.get("created_time"),
        )


class RunLifeCycleState(str, Enum):
    """
    Lifecycle state of a job run.

    Values not known to this client map to UNKNOWN so a newer service does
    not break polling.
    """

    PENDING = "PENDING"
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"
    SKIPPED = "SKIPPED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    WAITING_FOR_RETRY = "WAITING_FOR_RETRY"
    BLOCKED = "BLOCKED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


TERMINAL_STATES = frozenset(
    {
        RunLifeCycleState.TERMINATED,
        RunLifeCycleState.SKIPPED,
        RunLifeCycleState.INTERNAL_ERROR,
    }
)


class RunResultState(str, Enum):
    """Outcome of a run once its lifecycle is terminal."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    TIMEDOUT = "TIMEDOUT"
    CANCELED = "CANCELED"
    EXCLUDED = "EXCLUDED"
    SUCCESS_WITH_FAILURES = "SUCCESS_WITH_FAILURES"
    UPSTREAM_FAILED = "UPSTREAM_FAILED"
    UPSTREAM_CANCELED = "UPSTREAM_CANCELED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


@dataclass(frozen=True)
class RunState:
    """Observed state of a run."""

    life_cycle_state: RunLifeCycleState = RunLifeCycleState.UNKNOWN
    result_state: RunResultState | None = None
    state_message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.life_cycle_state in TERMINAL_STATES

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> RunState:
        payload = payload or {}
        result = payload.get("result_state")
        return cls(
            life_cycle_state=RunLifeCycleState(
                payload.get("life_cycle_state") or "UNKNOWN"
            ),
            result_state=RunResultState(result) if result else None,
            state_message=payload.get("state_message") or "",
        )


@dataclass(frozen=True)
class JobRun:
    """
    Represents a single execution (run) of a Databricks job.

    Attributes:
        run_id: Unique identifier of the job run.
        job_id: Identifier of the Databricks job this run belongs to.
        state: Last state reported for the run.
    """

    run_id: int
    job_id: int
    state: RunState = field(default_factory=RunState)
    number_in_job: int | None = None
    start_time: int | None = None
    trigger: str | None = None
    run_type: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> JobRun:
        return cls(
            run_id=int(payload["run_id"]),
            job_id=int(payload.get("job_id") or 0),
            state=RunState.from_dict(payload.get("state")),
            number_in_job=payload.get("number_in_job"),
            start_time=payload.get("start_time"),
            trigger=payload.get("trigger"),
            run_type=payload.get("run_type"),
        )


@dataclass(frozen=True)
class JobRunsPage:
    """One page of a runs listing."""

    runs: list[JobRun]
    has_more: bool = False


@dataclass(frozen=True)
class RunParameters:
    """Per-run parameter overrides for run-now."""

    notebook_params: Mapping[str, str] | None = None
    jar_params: tuple[str, ...] = ()
    python_params: tuple[str, ...] = ()
    spark_submit_params: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return compact_payload(
            {
                "notebook_params": dict(self.notebook_params or {}),
                "jar_params": list(self.jar_params),
                "python_params": list(self.python_params),
                "spark_submit_params": list(self.spark_submit_params),
            }
        )


class JobsAdapter(Protocol):
    """Interface for job CRUD operations used by the lifecycle layer."""

    def list_jobs(
        self, *, version: ApiVersion, offset: int = 0, limit: int = 25
    ) -> tuple[list[Job], bool]:
        """Return one page of jobs and whether more pages exist."""
        ...

    def create_job(self, settings: JobSettings, *, version: ApiVersion) -> Job:
        """Create a job and return it with its id populated."""
        ...

    def get_job(self, job_id: int, *, version: ApiVersion) -> Job:
        """Return a job; raises NotFound if it does not exist."""
        ...

    def reset_job(
        self, job_id: int, settings: JobSettings, *, version: ApiVersion
    ) -> None:
        """Replace all settings of a job; raises NotFound if it does not exist."""
        ...

    def delete_job(self, job_id: int, *, version: ApiVersion) -> None:
        """Delete a job; raises NotFound if it does not exist."""
        ...


def job_url(host: str, job_id: int) -> str:
    """Return the workspace UI URL of a job."""
    return f"{host.rstrip('/')}/#job/{job_id}"
