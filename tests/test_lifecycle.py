from dataclasses import replace
from datetime import timedelta

import pytest
from databricks.sdk.errors import DatabricksError, NotFound

from dbjobs.core.errors import (
    PreconditionViolation,
    RunStartError,
    TerminalRunFailure,
)
from dbjobs.core.jobs import Job, JobRun, JobRunsPage, RunLifeCycleState, RunState
from dbjobs.core.lifecycle import (
    create_job,
    delete_job,
    list_jobs,
    read_job,
    update_job,
    validate_settings,
)
from dbjobs.core.routing import ApiVersion
from dbjobs.core.settings import JobSettings, JobTaskSettings, NotebookTask

TIMEOUT = timedelta(minutes=5)


def _tasks(*keys):
    return tuple(
        JobTaskSettings(task_key=k, task=NotebookTask(notebook_path=f"/nb/{k}"))
        for k in keys
    )


class _InMemoryJobs:
    """Small in-memory jobs service that does not preserve task order."""

    def __init__(self):
        self.jobs: dict[int, JobSettings] = {}
        self.calls = []
        self.next_job_id = 100
        self.next_run_id = 900
        self.run_states: dict[int, RunLifeCycleState] = {}
        self.active: dict[int, list[int]] = {}
        self.run_now_error = None
        self.new_run_state = RunLifeCycleState.RUNNING

    def names(self):
        return [c[0] for c in self.calls]

    def versions(self, name):
        return [c[-1] for c in self.calls if c[0] == name]

    def _existing(self, job_id):
        if job_id not in self.jobs:
            raise NotFound(f"Job {job_id} does not exist.")
        return self.jobs[job_id]

    # jobs

    def list_jobs(self, *, version, offset=0, limit=25):
        self.calls.append(("list_jobs", offset, version))
        ids = sorted(self.jobs)[offset : offset + limit]
        page = [Job(id=i, settings=self.jobs[i]) for i in ids]
        return page, offset + limit < len(self.jobs)

    def create_job(self, settings, *, version):
        self.calls.append(("create_job", settings.task_keys, version))
        job_id = self.next_job_id
        self.next_job_id += 1
        self.jobs[job_id] = settings
        return Job(id=job_id)

    def get_job(self, job_id, *, version):
        self.calls.append(("get_job", job_id, version))
        settings = self._existing(job_id)
        shuffled = replace(settings, tasks=tuple(reversed(settings.tasks)))
        return Job(id=job_id, settings=shuffled, creator_user_name="someone")

    def reset_job(self, job_id, settings, *, version):
        self.calls.append(("reset_job", job_id, version))
        self._existing(job_id)
        self.jobs[job_id] = settings

    def delete_job(self, job_id, *, version):
        self.calls.append(("delete_job", job_id, version))
        self._existing(job_id)
        del self.jobs[job_id]

    # runs

    def run_now(self, job_id, *, version, parameters=None):
        self.calls.append(("run_now", job_id, version))
        if self.run_now_error is not None:
            raise self.run_now_error
        run_id = self.next_run_id
        self.next_run_id += 1
        self.run_states[run_id] = self.new_run_state
        self.active.setdefault(job_id, []).append(run_id)
        return JobRun(run_id=run_id, job_id=job_id)

    def get_run(self, run_id, *, version):
        self.calls.append(("get_run", run_id, version))
        return JobRun(
            run_id=run_id,
            job_id=0,
            state=RunState(life_cycle_state=self.run_states[run_id]),
        )

    def cancel_run(self, run_id, *, version):
        self.calls.append(("cancel_run", run_id, version))
        self.run_states[run_id] = RunLifeCycleState.TERMINATED
        for runs in self.active.values():
            if run_id in runs:
                runs.remove(run_id)

    def list_runs(
        self,
        job_id,
        *,
        version,
        active_only=False,
        completed_only=False,
        offset=0,
        limit=25,
    ):
        self.calls.append(("list_runs", job_id, version))
        ids = self.active.get(job_id, [])[offset : offset + limit]
        runs = [
            JobRun(run_id=i, job_id=job_id, state=RunState(self.run_states[i]))
            for i in ids
        ]
        return JobRunsPage(runs=runs)


# --- create / read ------------------------------------------------------------


def test_create_sends_tasks_sorted_through_multi_task_api():
    jobs = _InMemoryJobs()

    job = create_job(jobs, JobSettings(name="etl", tasks=_tasks("b", "c", "a")))

    assert jobs.calls == [("create_job", ["a", "b", "c"], ApiVersion.MULTI_TASK)]
    assert job.id == 100
    assert job.settings.task_keys == ["a", "b", "c"]


def test_create_legacy_job_uses_legacy_api():
    jobs = _InMemoryJobs()

    create_job(jobs, JobSettings(name="nb", task=NotebookTask("/nb/x")))

    assert jobs.versions("create_job") == [ApiVersion.LEGACY]


def test_read_back_returns_tasks_in_key_order():
    jobs = _InMemoryJobs()
    settings = JobSettings(name="etl", tasks=_tasks("b", "a"))

    job = create_job(jobs, settings)
    read = read_job(jobs, job.id, settings=settings)

    assert read.settings.task_keys == ["a", "b"]
    assert read.settings == job.settings
    assert jobs.versions("get_job") == [ApiVersion.MULTI_TASK]


def test_read_without_known_settings_uses_legacy_api():
    jobs = _InMemoryJobs()
    jobs.jobs[5] = JobSettings(name="nb", task=NotebookTask("/nb/x"))

    read_job(jobs, 5)

    assert jobs.versions("get_job") == [ApiVersion.LEGACY]


def test_read_missing_job_raises_not_found():
    with pytest.raises(NotFound):
        read_job(_InMemoryJobs(), 123)


def test_create_always_running_starts_and_confirms(clock):
    jobs = _InMemoryJobs()

    job = create_job(
        jobs,
        JobSettings(name="stream", tasks=_tasks("a")),
        always_running=True,
        timeout=TIMEOUT,
        clock=clock,
    )

    assert jobs.names() == ["create_job", "run_now", "get_run"]
    assert jobs.active[job.id] == [900]
    assert jobs.versions("run_now") == [ApiVersion.MULTI_TASK]


def test_create_always_running_keeps_job_when_start_fails(clock):
    jobs = _InMemoryJobs()
    jobs.run_now_error = DatabricksError("cluster quota exceeded")

    with pytest.raises(RunStartError):
        create_job(
            jobs,
            JobSettings(name="stream", tasks=_tasks("a")),
            always_running=True,
            timeout=TIMEOUT,
            clock=clock,
        )

    assert list(jobs.jobs) == [100]
    assert "delete_job" not in jobs.names()


def test_create_always_running_names_job_when_first_run_crashes(clock):
    jobs = _InMemoryJobs()
    jobs.new_run_state = RunLifeCycleState.INTERNAL_ERROR

    with pytest.raises(RunStartError) as excinfo:
        create_job(
            jobs,
            JobSettings(name="stream", tasks=_tasks("a")),
            always_running=True,
            timeout=TIMEOUT,
            clock=clock,
        )

    assert excinfo.value.job_id == 100
    assert excinfo.value.run_id == 900
    assert isinstance(excinfo.value.__cause__, TerminalRunFailure)
    assert list(jobs.jobs) == [100]


def test_create_rejects_always_running_with_concurrency_above_one():
    jobs = _InMemoryJobs()
    settings = JobSettings(name="stream", tasks=_tasks("a"), max_concurrent_runs=2)

    with pytest.raises(PreconditionViolation, match="max_concurrent_runs = 1"):
        create_job(jobs, settings, always_running=True)

    assert jobs.calls == []


def test_create_rejects_task_cluster_without_workers():
    jobs = _InMemoryJobs()
    task = JobTaskSettings(
        task_key="x",
        new_cluster={"spark_version": "13.3.x-scala2.12", "num_workers": 0},
        task=NotebookTask("/nb/x"),
    )

    with pytest.raises(PreconditionViolation, match="task x invalid"):
        create_job(jobs, JobSettings(name="etl", tasks=(task,)))

    assert jobs.calls == []


def test_validate_settings_accepts_concurrency_without_always_running():
    validate_settings(JobSettings(max_concurrent_runs=4))


# --- update -------------------------------------------------------------------


def test_update_routes_by_new_settings():
    jobs = _InMemoryJobs()
    jobs.jobs[5] = JobSettings(name="nb", task=NotebookTask("/nb/x"))

    run_id = update_job(jobs, 5, JobSettings(name="nb", tasks=_tasks("a", "b")))

    assert run_id is None
    assert jobs.versions("reset_job") == [ApiVersion.MULTI_TASK]
    assert jobs.jobs[5].task_keys == ["a", "b"]


def test_update_always_running_restarts_active_run(clock):
    jobs = _InMemoryJobs()
    jobs.jobs[5] = JobSettings(name="stream", tasks=_tasks("a"))
    jobs.run_states[41] = RunLifeCycleState.RUNNING
    jobs.active[5] = [41]

    run_id = update_job(
        jobs,
        5,
        JobSettings(name="stream", tasks=_tasks("a")),
        always_running=True,
        timeout=TIMEOUT,
        clock=clock,
    )

    names = jobs.names()
    assert run_id == 900
    assert names.index("reset_job") < names.index("cancel_run") < names.index("run_now")
    assert jobs.active[5] == [900]


def test_update_missing_job_raises_not_found():
    with pytest.raises(NotFound):
        update_job(_InMemoryJobs(), 7, JobSettings(name="x"))


# --- delete / list ------------------------------------------------------------


def test_delete_existing_job():
    jobs = _InMemoryJobs()
    jobs.jobs[5] = JobSettings(name="x")

    assert delete_job(jobs, 5) is True
    assert jobs.jobs == {}


def test_delete_missing_job_succeeds():
    jobs = _InMemoryJobs()

    assert delete_job(jobs, 5) is False
    assert jobs.versions("delete_job") == [ApiVersion.LEGACY]


def test_delete_propagates_other_errors():
    class _Broken(_InMemoryJobs):
        def delete_job(self, job_id, *, version):
            raise DatabricksError("service unavailable")

    with pytest.raises(DatabricksError, match="service unavailable"):
        delete_job(_Broken(), 5)


def test_list_jobs_follows_pages():
    jobs = _InMemoryJobs()
    for i in range(5):
        jobs.jobs[i] = JobSettings(name=f"job-{i}")

    listed = list_jobs(jobs, page_size=2)

    assert [j.id for j in listed] == [0, 1, 2, 3, 4]
    assert [c[1] for c in jobs.calls] == [0, 2, 4]
