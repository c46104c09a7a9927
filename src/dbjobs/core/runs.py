"""Core job run control: polling, start, cancel and restart.

This module contains the domain-level functions that drive a job's runs:
waiting for a run to reach a lifecycle state within a deadline, starting a
run and confirming it is actually running, cancelling a run and confirming
it terminated, and restarting a job so that exactly one run is active.

Everything here is synchronous. The only deliberate blocking happens inside
``wait_for_run_state``, whose sleeps go through an injectable SDK ``Clock``
so tests can run the loop without real time passing.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Protocol

from databricks.sdk.clock import Clock
from databricks.sdk.errors import DatabricksError
from databricks.sdk.retries import retried

from dbjobs.core.errors import (
    PreconditionViolation,
    RunCancelError,
    RunFetchError,
    RunStartError,
    RunStateError,
    RunTimeout,
    TerminalRunFailure,
)
from dbjobs.core.jobs import (
    JobRun,
    JobRunsPage,
    RunLifeCycleState,
    RunParameters,
    RunState,
)
from dbjobs.core.routing import ApiVersion

logger = logging.getLogger(__name__)

RUNS_PAGE_SIZE = 25


class JobRunsAdapter(Protocol):
    """Interface for starting, cancelling and querying job runs."""

    def run_now(
        self,
        job_id: int,
        *,
        version: ApiVersion,
        parameters: RunParameters | None = None,
    ) -> JobRun:
        """Start a job and return its run handle."""
        ...

    def get_run(self, run_id: int, *, version: ApiVersion) -> JobRun:
        """Return the current state of a run."""
        ...

    def cancel_run(self, run_id: int, *, version: ApiVersion) -> None:
        """Request cancellation of a run."""
        ...

    def list_runs(
        self,
        job_id: int,
        *,
        version: ApiVersion,
        active_only: bool = False,
        completed_only: bool = False,
        offset: int = 0,
        limit: int = RUNS_PAGE_SIZE,
    ) -> JobRunsPage:
        """Return one page of runs for a job."""
        ...


class _RunNotInState(Exception):
    """Retryable marker: the run has not reached the desired state yet."""

    def __init__(self, state: RunState):
        super().__init__(
            f"run is {state.life_cycle_state.value}: {state.state_message}"
        )
        self.state = state


def wait_for_run_state(
    adapter: JobRunsAdapter,
    run_id: int,
    desired: RunLifeCycleState | str,
    timeout: timedelta,
    *,
    version: ApiVersion,
    clock: Clock | None = None,
) -> RunState:
    """
    Block until a run reaches the desired lifecycle state.

    The run is polled with backoff until it reports ``desired``. Polling
    stops early when the run status cannot be fetched or when the run
    reports INTERNAL_ERROR; every other state is retried until the
    deadline.

    Args:
        adapter: Runs adapter used to fetch the run state.
        run_id: Run to watch.
        desired: Lifecycle state to wait for (e.g. RUNNING, TERMINATED).
        timeout: Total time allowed for the wait.
        version: Jobs API version to address the run with.
        clock: Clock used for deadlines and sleeps (real clock by default).

    Returns:
        The state that matched.

    Raises:
        RunFetchError: If fetching the run failed.
        TerminalRunFailure: If the run reported INTERNAL_ERROR.
        RunTimeout: If the deadline elapsed first.
    """
    desired = RunLifeCycleState(desired)
    last_seen: list[RunState] = []

    @retried(on=[_RunNotInState], timeout=timeout, clock=clock)
    def _poll() -> RunState:
        try:
            run = adapter.get_run(run_id, version=version)
        except DatabricksError as exc:
            raise RunFetchError(
                f"cannot get job {desired.value}: {exc}",
                run_id=run_id,
                desired_state=desired.value,
            ) from exc

        state = run.state
        last_seen[:] = [state]
        logger.debug(
            "Run %d is %s (waiting for %s)",
            run_id,
            state.life_cycle_state.value,
            desired.value,
        )
        if state.life_cycle_state == desired:
            return state
        if state.life_cycle_state == RunLifeCycleState.INTERNAL_ERROR:
            raise TerminalRunFailure(
                f"cannot get job {desired.value}: {state.state_message}",
                run_id=run_id,
                desired_state=desired.value,
                observed_state=state.life_cycle_state.value,
                state_message=state.state_message,
            )
        raise _RunNotInState(state)

    try:
        return _poll()
    except TimeoutError as exc:
        last = last_seen[0] if last_seen else None
        observed = last.life_cycle_state.value if last else "UNKNOWN"
        message = last.state_message if last else ""
        raise RunTimeout(
            f"run {run_id} did not reach {desired.value} within {timeout}: "
            f"run is {observed}: {message}",
            run_id=run_id,
            desired_state=desired.value,
            observed_state=observed,
            state_message=message,
        ) from exc


def trigger_run(
    adapter: JobRunsAdapter,
    job_id: int,
    *,
    version: ApiVersion,
    parameters: RunParameters | None = None,
) -> int:
    """Request a new run of a job and return its run id."""
    run = adapter.run_now(job_id, version=version, parameters=parameters)
    logger.info("Triggered run %d of job %d", run.run_id, job_id)
    return run.run_id


def cancel_run(
    adapter: JobRunsAdapter,
    run_id: int,
    timeout: timedelta,
    *,
    version: ApiVersion,
    clock: Clock | None = None,
) -> RunState:
    """
    Cancel a run and wait until it is TERMINATED.

    A rejected cancel request raises the transport error as-is; an accepted
    request that is not observed to finish in time raises RunTimeout.
    """
    adapter.cancel_run(run_id, version=version)
    logger.info("Cancel requested for run %d", run_id)
    return wait_for_run_state(
        adapter,
        run_id,
        RunLifeCycleState.TERMINATED,
        timeout,
        version=version,
        clock=clock,
    )


def start_and_confirm(
    adapter: JobRunsAdapter,
    job_id: int,
    timeout: timedelta,
    *,
    version: ApiVersion,
    clock: Clock | None = None,
) -> int:
    """
    Start a job and wait until the new run is RUNNING.

    Returns:
        The id of the run that was started.

    Raises:
        RunStartError: If run-now was rejected, or the new run crashed or
            did not reach RUNNING in time (the wait error is the cause).
    """
    try:
        run_id = trigger_run(adapter, job_id, version=version)
    except DatabricksError as exc:
        raise RunStartError(f"cannot start job run: {exc}", job_id=job_id) from exc
    try:
        wait_for_run_state(
            adapter,
            run_id,
            RunLifeCycleState.RUNNING,
            timeout,
            version=version,
            clock=clock,
        )
    except RunStateError as exc:
        raise RunStartError(
            f"run {run_id} of job {job_id} did not start: {exc}",
            job_id=job_id,
            run_id=run_id,
        ) from exc
    return run_id


def list_active_runs(
    adapter: JobRunsAdapter,
    job_id: int,
    *,
    version: ApiVersion,
    page_size: int = RUNS_PAGE_SIZE,
) -> list[JobRun]:
    """Return all runs of a job that are not yet terminal, across pages."""
    runs: list[JobRun] = []
    offset = 0
    while True:
        page = adapter.list_runs(
            job_id,
            version=version,
            active_only=True,
            offset=offset,
            limit=page_size,
        )
        runs.extend(page.runs)
        if not page.has_more or not page.runs:
            return runs
        offset += len(page.runs)


def restart(
    adapter: JobRunsAdapter,
    job_id: int,
    timeout: timedelta,
    *,
    version: ApiVersion,
    clock: Clock | None = None,
) -> int:
    """
    Make sure exactly one fresh run of the job is active.

    With no active run a new one is started. With one active run it is
    cancelled first and the replacement is only started once the old run is
    confirmed TERMINATED. More than one active run means the job does not
    run with a concurrency limit of 1; that is reported, not repaired.

    The active-run listing is a snapshot. A run started concurrently by
    another actor surfaces as an ordinary cancel or start failure.

    Returns:
        The id of the newly started run.

    Raises:
        PreconditionViolation: If more than one run is active.
        RunCancelError: If the active run could not be cancelled.
        RunStartError: If the replacement run could not be started.
    """
    active = list_active_runs(adapter, job_id, version=version)
    if len(active) > 1:
        raise PreconditionViolation(
            "`always_running` must be specified only with "
            f"`max_concurrent_runs = 1`. There are {len(active)} active runs"
        )
    if not active:
        logger.info("Job %d has no active run, starting one", job_id)
        return start_and_confirm(
            adapter, job_id, timeout, version=version, clock=clock
        )

    run = active[0]
    logger.info("Restarting job %d: cancelling active run %d", job_id, run.run_id)
    try:
        cancel_run(adapter, run.run_id, timeout, version=version, clock=clock)
    except (DatabricksError, RunStateError) as exc:
        raise RunCancelError(
            f"cannot cancel run {run.run_id}: {exc}",
            job_id=job_id,
            run_id=run.run_id,
        ) from exc
    return start_and_confirm(adapter, job_id, timeout, version=version, clock=clock)
