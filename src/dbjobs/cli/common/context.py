"""Application context management for the CLI."""

from dataclasses import dataclass

from databricks.sdk import WorkspaceClient

from dbjobs.cli.common.exits import die
from dbjobs.core.adapters.databricksjobs import DatabricksJobsAdapter
from dbjobs.core.auth import AuthError, get_client


@dataclass
class JobsAppContext:
    """Application context holding the Databricks client and jobs adapter."""

    profile: str | None
    client: WorkspaceClient
    adapter: DatabricksJobsAdapter


def build_jobs_context(profile: str | None) -> JobsAppContext:
    """Build the application context for a Databricks profile.

    Args:
        profile: Optional Databricks profile name to use for authentication.

    Returns:
        JobsAppContext: Application context with configured client and adapter.
    """
    try:
        client = get_client(profile)
    except AuthError as exc:
        die(str(exc), code=1)
    return JobsAppContext(
        profile=profile, client=client, adapter=DatabricksJobsAdapter(client)
    )
