"""CLI application for Databricks job lifecycle management."""

import typer

from dbjobs.cli.commands.jobs import app as jobs_app
from dbjobs.cli.common.options import VerboseOpt
from dbjobs.cli.common.output import configure_logging

app = typer.Typer(
    help="dbjobs - create, update, restart and delete Databricks jobs",
    no_args_is_help=True,
)


@app.callback()
def _main(verbose: bool = VerboseOpt):
    """Configure logging for every command."""
    configure_logging(verbose)


app.add_typer(
    jobs_app, name="jobs", help="Create / read / update / delete / restart jobs."
)


if __name__ == "__main__":
    app()
