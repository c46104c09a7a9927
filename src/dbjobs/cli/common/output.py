"""Output formatting utilities for the CLI."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.theme import Theme

from dbjobs.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)
err_console = Console(theme=_THEME, stderr=True)

_STATE_STYLES = {
    "RUNNING": "ok",
    "PENDING": "warn",
    "QUEUED": "warn",
    "BLOCKED": "warn",
    "WAITING_FOR_RETRY": "warn",
    "TERMINATING": "warn",
    "INTERNAL_ERROR": "err",
}


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=verbose)],
        force=True,
    )


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables.

    Results go to stdout; errors go to stderr so ``--json`` output stays
    pipeable.
    """

    def _line(self, marker: str, msg: str, *, to_stderr: bool = False) -> None:
        (err_console if to_stderr else console).print(f"{marker} {msg}")

    def info(self, msg: str) -> None:
        self._line("[title]›[/]", msg)

    def success(self, msg: str) -> None:
        self._line("[ok]✓[/]", msg)

    def warn(self, msg: str) -> None:
        self._line("[warn]⚠[/]", msg)

    def error(self, msg: str) -> None:
        self._line("[err]✗[/]", msg, to_stderr=True)

    @contextmanager
    def status(self, msg: str):
        """Spinner shown while a remote call or run wait is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def header(self, title: str) -> None:
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print ``key: value`` lines; unset values are left out."""
        for key, value in items.items():
            if value not in (None, ""):
                console.print(f"[meta]{key}[/]: {value}")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask a yes/no question before a destructive command.

        Args:
            message: Question shown to the user.
            default: Answer used when the user just presses enter.

        Returns:
            True if the user confirmed.
        """
        console.print("[meta]Use y/n then Enter[/]")
        kwargs = {
            "default": default,
            "style": QUESTIONARY_STYLE_CONFIRM,
            "qmark": "✦",
            "auto_enter": False,
        }
        try:
            prompt = questionary.confirm(f"[DB-JOBS] {message}", **kwargs)
        except TypeError:
            # auto_enter is missing on old questionary releases
            kwargs.pop("auto_enter")
            prompt = questionary.confirm(f"[DB-JOBS] {message}", **kwargs)
        return bool(prompt.ask())

    def jobs_table(self, jobs: Iterable[Any], title: str = "Jobs") -> None:
        """
        Expects objects with .id and .settings (like dbjobs.core.jobs.Job)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Job ID", style="ok", no_wrap=True)
        t.add_column("Name")
        t.add_column("Format", style="meta")
        t.add_column("Tasks", style="meta", justify="right")

        for j in jobs:
            settings = getattr(j, "settings", None)
            fmt = (getattr(settings, "format", None) or "") if settings else ""
            tasks = len(settings.tasks) if settings else 0
            t.add_row(str(j.id), j.name, fmt, str(tasks) if tasks else "")

        console.print(t)

    def tasks_table(self, tasks: Iterable[Any], title: str = "Tasks") -> None:
        """
        Expects objects with .task_key, .task and .depends_on
        (e.g. dbjobs.core.settings.JobTaskSettings)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Task key", style="ok", no_wrap=True)
        t.add_column("Type")
        t.add_column("Depends on", style="meta")
        t.add_column("Cluster", style="meta")

        for task in tasks:
            descriptor = getattr(task, "task", None)
            kind = descriptor.wire_key if descriptor is not None else ""
            cluster = task.existing_cluster_id or ("new" if task.new_cluster else "")
            t.add_row(task.task_key, kind, ", ".join(task.depends_on), cluster)

        console.print(t)

    def runs_table(self, runs: Iterable[Any], title: str = "Runs") -> None:
        """
        Expects objects with .job_id, .run_id and .state
        (e.g. dbjobs.core.jobs.JobRun)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Job ID", style="ok", no_wrap=True)
        t.add_column("Run ID", style="ok", no_wrap=True)
        t.add_column("State")
        t.add_column("Message", style="meta")

        for r in runs:
            state = r.state.life_cycle_state.value
            style = _STATE_STYLES.get(state, "meta")
            t.add_row(
                str(r.job_id),
                str(r.run_id),
                f"[{style}]{state}[/{style}]",
                r.state.state_message,
            )

        console.print(t)


out = Out()
