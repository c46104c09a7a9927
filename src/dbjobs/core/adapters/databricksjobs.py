from __future__ import annotations

import logging
from typing import Any

from databricks.sdk import WorkspaceClient
from databricks.sdk.errors import DatabricksError

from dbjobs.core.errors import wrap_missing_job_error
from dbjobs.core.jobs import Job, JobRun, JobRunsPage, RunParameters
from dbjobs.core.routing import ApiVersion
from dbjobs.core.settings import JobSettings

logger = logging.getLogger(__name__)


class DatabricksJobsAdapter:
    """Adapter around the Databricks Jobs REST API (2.0 and 2.1).

    Every call takes the API version explicitly; the adapter keeps no
    per-job state.
    """

    def __init__(self, client: WorkspaceClient):
        """Create a jobs adapter for a Databricks workspace."""
        self.client = client

    @property
    def host(self) -> str:
        return getattr(getattr(self.client, "config", None), "host", None) or ""

    def _get(
        self, version: ApiVersion, path: str, query: dict[str, Any]
    ) -> dict[str, Any]:
        logger.debug("GET %s%s %s", version.prefix, path, query)
        resp = self.client.api_client.do("GET", f"{version.prefix}{path}", query=query)
        return resp or {}

    def _post(
        self, version: ApiVersion, path: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        logger.debug("POST %s%s", version.prefix, path)
        resp = self.client.api_client.do("POST", f"{version.prefix}{path}", body=body)
        return resp or {}

    # --- jobs ---------------------------------------------------------------

    def list_jobs(
        self, *, version: ApiVersion, offset: int = 0, limit: int = 25
    ) -> tuple[list[Job], bool]:
        """Return one page of jobs and whether more pages exist."""
        resp = self._get(version, "/jobs/list", {"offset": offset, "limit": limit})
        jobs = [Job.from_dict(j) for j in resp.get("jobs") or []]
        return jobs, bool(resp.get("has_more"))

    def create_job(self, settings: JobSettings, *, version: ApiVersion) -> Job:
        """Create a job and return it with the assigned id."""
        resp = self._post(version, "/jobs/create", settings.to_dict())
        return Job(id=int(resp["job_id"]), settings=settings)

    def get_job(self, job_id: int, *, version: ApiVersion) -> Job:
        """Return a job by id."""
        try:
            resp = self._get(version, "/jobs/get", {"job_id": job_id})
        except DatabricksError as exc:
            raise wrap_missing_job_error(exc, job_id)
        return Job.from_dict(resp)

    def reset_job(
        self, job_id: int, settings: JobSettings, *, version: ApiVersion
    ) -> None:
        """Replace all settings of a job."""
        body = {"job_id": job_id, "new_settings": settings.to_dict()}
        try:
            self._post(version, "/jobs/reset", body)
        except DatabricksError as exc:
            raise wrap_missing_job_error(exc, job_id)

    def delete_job(self, job_id: int, *, version: ApiVersion) -> None:
        """Delete a job by id."""
        try:
            self._post(version, "/jobs/delete", {"job_id": job_id})
        except DatabricksError as exc:
            raise wrap_missing_job_error(exc, job_id)

    # --- runs ---------------------------------------------------------------

    def run_now(
        self,
        job_id: int,
        *,
        version: ApiVersion,
        parameters: RunParameters | None = None,
    ) -> JobRun:
        """Start a Databricks job and return its run handle."""
        body = {"job_id": job_id, **(parameters.to_dict() if parameters else {})}
        resp = self._post(version, "/jobs/run-now", body)
        return JobRun(
            run_id=int(resp["run_id"]),
            job_id=job_id,
            number_in_job=resp.get("number_in_job"),
        )

    def get_run(self, run_id: int, *, version: ApiVersion) -> JobRun:
        """Return a run with its current state."""
        resp = self._get(version, "/jobs/runs/get", {"run_id": run_id})
        return JobRun.from_dict(resp)

    def cancel_run(self, run_id: int, *, version: ApiVersion) -> None:
        """Request cancellation of a run."""
        self._post(version, "/jobs/runs/cancel", {"run_id": run_id})

    def list_runs(
        self,
        job_id: int,
        *,
        version: ApiVersion,
        active_only: bool = False,
        completed_only: bool = False,
        offset: int = 0,
        limit: int = 25,
    ) -> JobRunsPage:
        """Return one page of runs of a job."""
        query: dict[str, Any] = {"job_id": job_id, "offset": offset, "limit": limit}
        if active_only:
            query["active_only"] = "true"
        if completed_only:
            query["completed_only"] = "true"
        resp = self._get(version, "/jobs/runs/list", query)
        return JobRunsPage(
            runs=[JobRun.from_dict(r) for r in resp.get("runs") or []],
            has_more=bool(resp.get("has_more")),
        )
