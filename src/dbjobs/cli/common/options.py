"""Common CLI options for the CLI."""

import typer

DEFAULT_TIMEOUT_MINUTES = 30

ProfileOpt = typer.Option(
    None,
    "--profile",
    "-p",
    help="Databricks CLI profile (from ~/.databrickscfg)",
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Show debug logging (API calls, poll observations)",
)

AlwaysRunningOpt = typer.Option(
    False,
    "--always-running",
    help="Keep exactly one run active: start after create, restart after update",
)

TimeoutOpt = typer.Option(
    DEFAULT_TIMEOUT_MINUTES,
    "--timeout",
    min=1,
    envvar="DBJOBS_TIMEOUT_MINUTES",
    help="Minutes to wait for a run to start or terminate",
)

MultiTaskOpt = typer.Option(
    False,
    "--multi-task",
    help="Address the job through the multi-task Jobs API (2.1)",
)

ConfirmOpt = typer.Option(
    True,
    "--confirm/--no-confirm",
    help="Ask for confirmation before deleting",
)

JsonOpt = typer.Option(
    False,
    "--json",
    help="Print the job as JSON (usable as a settings file)",
)
