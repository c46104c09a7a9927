"""Commands for managing the lifecycle of Databricks jobs."""

import json
from datetime import timedelta
from pathlib import Path
from typing import NoReturn

import typer
from databricks.sdk.errors import DatabricksError, NotFound

from dbjobs.cli.common.context import JobsAppContext, build_jobs_context
from dbjobs.cli.common.exits import (
    EXIT_NOT_FOUND,
    EXIT_USAGE,
    exit_from_exc,
    ok_exit,
)
from dbjobs.cli.common.options import (
    AlwaysRunningOpt,
    ConfirmOpt,
    JsonOpt,
    MultiTaskOpt,
    ProfileOpt,
    TimeoutOpt,
)
from dbjobs.cli.common.output import out
from dbjobs.core.errors import JobsError, PreconditionViolation
from dbjobs.core.jobs import job_url
from dbjobs.core.lifecycle import (
    create_job,
    delete_job,
    list_jobs,
    read_job,
    update_job,
)
from dbjobs.core.routing import select_version
from dbjobs.core.runs import list_active_runs, restart as restart_job
from dbjobs.core.settings import MULTI_TASK_FORMAT, JobSettings, load_settings

app = typer.Typer(
    help="Work with Databricks Jobs",
    no_args_is_help=False,
    invoke_without_command=True,
)

SettingsFileArg = typer.Argument(
    ...,
    exists=True,
    dir_okay=False,
    help="JSON file with job settings (Jobs API payload shape)",
)


@app.callback()
def _init(ctx: typer.Context, profile: str | None = ProfileOpt):
    """Initialize jobs context."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)
    ctx.obj = build_jobs_context(profile)


def _load_settings_or_exit(path: Path) -> JobSettings:
    """Parse a settings file, exiting with a usage error when invalid."""
    try:
        return load_settings(path)
    except PreconditionViolation as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_USAGE)


def _routing_hint(multi_task: bool) -> JobSettings | None:
    """Settings stand-in that routes a call by job shape alone."""
    return JobSettings(format=MULTI_TASK_FORMAT) if multi_task else None


def _fail(exc: Exception, job_id: int | None = None) -> NoReturn:
    """Translate lifecycle errors into CLI exits."""
    if isinstance(exc, NotFound):
        exit_from_exc(exc, message=f"Job {job_id} not found", code=EXIT_NOT_FOUND)
    if isinstance(exc, PreconditionViolation):
        exit_from_exc(exc, message=str(exc), code=EXIT_USAGE)
    exit_from_exc(exc, message=str(exc))


@app.command("list")
def list_(ctx: typer.Context):
    """
    List all jobs.
    """
    appctx: JobsAppContext = ctx.obj

    try:
        with out.status("Loading jobs..."):
            jobs = list_jobs(appctx.adapter)
    except (DatabricksError, JobsError) as exc:
        _fail(exc)

    if not jobs:
        ok_exit("No jobs found")

    out.jobs_table(jobs)


@app.command()
def get(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., help="Job id"),
    multi_task: bool = MultiTaskOpt,
    as_json: bool = JsonOpt,
):
    """
    Show a job and its (sorted) tasks.
    """
    appctx: JobsAppContext = ctx.obj

    try:
        job = read_job(appctx.adapter, job_id, settings=_routing_hint(multi_task))
    except (DatabricksError, JobsError) as exc:
        _fail(exc, job_id)

    if as_json:
        payload = {"job_id": job.id}
        if job.settings is not None:
            payload["settings"] = job.settings.to_dict()
        typer.echo(json.dumps(payload, indent=2))
        return

    settings = job.settings
    out.header(job.name)
    out.kv(
        {
            "job_id": job.id,
            "creator": job.creator_user_name,
            "format": settings.format if settings else None,
            "max_concurrent_runs": settings.max_concurrent_runs if settings else None,
            "url": job_url(appctx.adapter.host, job.id),
        }
    )
    if settings and settings.tasks:
        out.tasks_table(settings.tasks)


@app.command()
def create(
    ctx: typer.Context,
    settings_file: Path = SettingsFileArg,
    always_running: bool = AlwaysRunningOpt,
    timeout: int = TimeoutOpt,
):
    """
    Create a job from a settings file.
    """
    appctx: JobsAppContext = ctx.obj
    settings = _load_settings_or_exit(settings_file)

    try:
        with out.status("Creating job..."):
            job = create_job(
                appctx.adapter,
                settings,
                always_running=always_running,
                timeout=timedelta(minutes=timeout),
            )
    except (DatabricksError, JobsError) as exc:
        _fail(exc)

    out.success(f"Created job {job.id}")
    out.kv({"url": job_url(appctx.adapter.host, job.id)})


@app.command()
def update(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., help="Job id"),
    settings_file: Path = SettingsFileArg,
    always_running: bool = AlwaysRunningOpt,
    timeout: int = TimeoutOpt,
):
    """
    Replace all settings of a job.
    """
    appctx: JobsAppContext = ctx.obj
    settings = _load_settings_or_exit(settings_file)

    try:
        with out.status("Updating job..."):
            run_id = update_job(
                appctx.adapter,
                job_id,
                settings,
                always_running=always_running,
                timeout=timedelta(minutes=timeout),
            )
    except (DatabricksError, JobsError) as exc:
        _fail(exc, job_id)

    out.success(f"Updated job {job_id}")
    if run_id is not None:
        out.kv({"run_id": run_id})


@app.command()
def delete(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., help="Job id"),
    multi_task: bool = MultiTaskOpt,
    confirm: bool = ConfirmOpt,
):
    """
    Delete a job (succeeds when it is already gone).
    """
    appctx: JobsAppContext = ctx.obj

    if confirm and not out.confirm(f"Delete job {job_id}?"):
        ok_exit("Cancelled")

    try:
        deleted = delete_job(
            appctx.adapter, job_id, settings=_routing_hint(multi_task)
        )
    except (DatabricksError, JobsError) as exc:
        _fail(exc, job_id)

    if deleted:
        out.success(f"Deleted job {job_id}")
    else:
        out.warn(f"Job {job_id} did not exist")


@app.command()
def restart(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., help="Job id"),
    multi_task: bool = MultiTaskOpt,
    timeout: int = TimeoutOpt,
):
    """
    Cancel the active run (if any) and start a fresh one.
    """
    appctx: JobsAppContext = ctx.obj
    version = select_version(_routing_hint(multi_task))

    try:
        with out.status(f"Restarting job {job_id}..."):
            run_id = restart_job(
                appctx.adapter,
                job_id,
                timedelta(minutes=timeout),
                version=version,
            )
    except (DatabricksError, JobsError) as exc:
        _fail(exc, job_id)

    out.success(f"Job {job_id} is running")
    out.kv({"run_id": run_id})


@app.command()
def runs(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., help="Job id"),
    multi_task: bool = MultiTaskOpt,
):
    """
    Show the active runs of a job.
    """
    appctx: JobsAppContext = ctx.obj
    version = select_version(_routing_hint(multi_task))

    try:
        active = list_active_runs(appctx.adapter, job_id, version=version)
    except (DatabricksError, JobsError) as exc:
        _fail(exc, job_id)

    if not active:
        ok_exit(f"Job {job_id} has no active runs")

    out.runs_table(active, title="Active runs")
