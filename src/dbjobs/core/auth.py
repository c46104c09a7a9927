"""Databricks client construction.

The workspace client is built from the Databricks unified authentication
configuration (a ``~/.databrickscfg`` profile or ``DATABRICKS_*`` env vars).
The host is sanitized first because URLs copied from the browser carry a
workspace query string that breaks API paths.
"""

import re

from databricks.sdk import WorkspaceClient
from databricks.sdk.core import Config

PRODUCT_NAME = "db-jobs"
PRODUCT_VERSION = "0.1.0"


class AuthError(RuntimeError):
    """Raised when Databricks authentication cannot be configured."""


def _format_auth_error(message: str, profile: str | None) -> str:
    """Return an auth error message with a re-login hint when possible."""
    if re.search(r"databricks auth login", message):
        cmd = "databricks auth login"
        if profile:
            cmd = f"{cmd} --profile {profile}"
        return (
            "Databricks authentication failed. Your token is invalid or expired.\n"
            f"Re-authenticate with:\n  $ {cmd}"
        )
    return f"Databricks authentication failed: {message}"


def _sanitize_host(host: str | None) -> str | None:
    """Strip a query string (``?o=<workspace id>``) and trailing slashes."""
    if not host:
        return host
    return host.split("?", 1)[0].rstrip("/")


def get_client(profile: str | None = None) -> WorkspaceClient:
    """
    Create a WorkspaceClient for the given profile (or the default config).

    Raises:
        AuthError: If the configuration cannot be resolved.
    """
    kwargs = {"product": PRODUCT_NAME, "product_version": PRODUCT_VERSION}
    try:
        cfg = Config(profile=profile, **kwargs) if profile else Config(**kwargs)
    except ValueError as exc:
        raise AuthError(_format_auth_error(str(exc), profile)) from exc
    cfg.host = _sanitize_host(cfg.host)
    return WorkspaceClient(config=cfg)
