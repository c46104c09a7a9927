"""Error taxonomy for job lifecycle and run control.

Transport failures are the Databricks SDK's own ``DatabricksError`` family
and are propagated unchanged. The classes below describe application-level
failures: a run that never reached the state we waited for, a run that
crashed, and configurations that violate a mode's preconditions.
"""

from __future__ import annotations

from databricks.sdk.errors import DatabricksError, NotFound


class JobsError(RuntimeError):
    """Base class for job lifecycle errors."""


class PreconditionViolation(JobsError, ValueError):
    """Raised when a configuration breaks an invariant required by a mode."""


class RunStateError(JobsError):
    """Base class for errors raised while waiting on a run state."""

    def __init__(
        self,
        message: str,
        *,
        run_id: int,
        desired_state: str,
        observed_state: str | None = None,
        state_message: str | None = None,
    ):
        super().__init__(message)
        self.run_id = run_id
        self.desired_state = desired_state
        self.observed_state = observed_state
        self.state_message = state_message


class RunFetchError(RunStateError):
    """Run status could not be fetched while polling."""


class TerminalRunFailure(RunStateError):
    """Run reached INTERNAL_ERROR while polling."""


class RunTimeout(RunStateError, TimeoutError):
    """Deadline elapsed before the run reached the desired state."""


class RunStartError(JobsError):
    """A job run was rejected, or the new run never reached RUNNING."""

    def __init__(self, message: str, *, job_id: int, run_id: int | None = None):
        super().__init__(message)
        self.job_id = job_id
        self.run_id = run_id


class RunCancelError(JobsError):
    """An active run could not be cancelled during a restart."""

    def __init__(self, message: str, *, job_id: int, run_id: int):
        super().__init__(message)
        self.job_id = job_id
        self.run_id = run_id


def is_missing(err: BaseException) -> bool:
    """Return True when the error means the remote entity does not exist."""
    return isinstance(err, NotFound)


def wrap_missing_job_error(err: Exception, job_id: int) -> Exception:
    """
    Reclassify the backend's non-compliant "missing job" error as NotFound.

    Some endpoints answer a request for an unknown job with a generic error
    code whose message reads ``Job <id> does not exist.``. Only that exact
    text for the requested id is reclassified; anything else is returned
    as-is.

    Returns:
        The exception the caller should raise.
    """
    if not isinstance(err, DatabricksError) or is_missing(err):
        return err
    if f"Job {job_id} does not exist." in str(err):
        missing = NotFound(str(err))
        missing.__cause__ = err
        return missing
    return err
