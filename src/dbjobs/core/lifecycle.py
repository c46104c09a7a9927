"""Create, read, update and delete a job resource.

These functions compose settings normalization, API version routing and run
control against a jobs adapter. They hold no state between calls: settings
are passed in on every call and the API version is recomputed from them each
time.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Protocol

from databricks.sdk.clock import Clock
from databricks.sdk.errors import NotFound

from dbjobs.core.errors import PreconditionViolation
from dbjobs.core.jobs import Job, JobsAdapter
from dbjobs.core.routing import ApiVersion, select_version
from dbjobs.core.runs import JobRunsAdapter, restart, start_and_confirm
from dbjobs.core.settings import JobSettings, normalize, validate_cluster

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=30)


class JobResourceAdapter(JobsAdapter, JobRunsAdapter, Protocol):
    """Adapter covering both job CRUD and run control."""


def validate_settings(settings: JobSettings, *, always_running: bool = False) -> None:
    """
    Check settings for invariants that the service would not catch early.

    Raises:
        PreconditionViolation: If always-running mode is combined with a
            concurrency limit above 1, or an inline cluster is invalid.
    """
    if always_running and settings.max_concurrent_runs > 1:
        raise PreconditionViolation(
            "`always_running` must be specified only with `max_concurrent_runs = 1`"
        )
    for task in settings.tasks:
        if task.new_cluster is None:
            continue
        try:
            validate_cluster(task.new_cluster)
        except PreconditionViolation as exc:
            raise PreconditionViolation(f"task {task.task_key} invalid: {exc}") from exc
    if settings.new_cluster is not None:
        try:
            validate_cluster(settings.new_cluster)
        except PreconditionViolation as exc:
            raise PreconditionViolation(f"invalid job cluster: {exc}") from exc


def list_jobs(
    adapter: JobsAdapter,
    *,
    version: ApiVersion = ApiVersion.MULTI_TASK,
    page_size: int = 25,
) -> list[Job]:
    """Return all jobs visible to the current principal."""
    jobs: list[Job] = []
    offset = 0
    while True:
        page, has_more = adapter.list_jobs(
            version=version, offset=offset, limit=page_size
        )
        jobs.extend(page)
        if not has_more or not page:
            return jobs
        offset += len(page)


def create_job(
    adapter: JobResourceAdapter,
    settings: JobSettings,
    *,
    always_running: bool = False,
    timeout: timedelta = DEFAULT_TIMEOUT,
    clock: Clock | None = None,
) -> Job:
    """
    Create a job, and start it when it must always be running.

    If starting the first run fails the job still exists; the error is
    raised with no rollback and the created job id is logged.
    """
    validate_settings(settings, always_running=always_running)
    settings = normalize(settings)
    version = select_version(settings)
    job = adapter.create_job(settings, version=version)
    logger.info(
        "Created job %d (%s) via Jobs API %s", job.id, settings.name, version.value
    )
    if job.settings is None:
        job = Job(id=job.id, settings=settings)
    if always_running:
        try:
            start_and_confirm(adapter, job.id, timeout, version=version, clock=clock)
        except Exception:
            logger.error("Job %d was created but its first run did not start", job.id)
            raise
    return job


def read_job(
    adapter: JobsAdapter,
    job_id: int,
    *,
    settings: JobSettings | None = None,
) -> Job:
    """
    Fetch a job with its settings normalized.

    Args:
        adapter: Jobs adapter.
        job_id: Job to read.
        settings: Last known settings of the job, used only to pick the API
                  version. Without them the legacy API is used.

    Raises:
        NotFound: If the job does not exist.
    """
    version = select_version(settings)
    job = adapter.get_job(job_id, version=version)
    if job.settings is None:
        return job
    return Job(
        id=job.id,
        settings=normalize(job.settings),
        creator_user_name=job.creator_user_name,
        created_time=job.created_time,
    )


def update_job(
    adapter: JobResourceAdapter,
    job_id: int,
    settings: JobSettings,
    *,
    always_running: bool = False,
    timeout: timedelta = DEFAULT_TIMEOUT,
    clock: Clock | None = None,
) -> int | None:
    """
    Replace all settings of a job, restarting it when always running.

    The API version is taken from the new settings, so a job switching from
    a single task to multiple tasks is updated through the multi-task API.

    Returns:
        The id of the restarted run in always-running mode, else None.

    Raises:
        NotFound: If the job does not exist.
    """
    validate_settings(settings, always_running=always_running)
    version = select_version(settings)
    adapter.reset_job(job_id, settings, version=version)
    logger.info("Updated job %d via Jobs API %s", job_id, version.value)
    if always_running:
        return restart(adapter, job_id, timeout, version=version, clock=clock)
    return None


def delete_job(
    adapter: JobsAdapter,
    job_id: int,
    *,
    settings: JobSettings | None = None,
) -> bool:
    """
    Delete a job. Deleting a job that no longer exists succeeds.

    Returns:
        True if the job was deleted, False if it was already gone.
    """
    version = select_version(settings)
    try:
        adapter.delete_job(job_id, version=version)
    except NotFound:
        logger.info("Job %d is already gone, nothing to delete", job_id)
        return False
    logger.info("Deleted job %d", job_id)
    return True
