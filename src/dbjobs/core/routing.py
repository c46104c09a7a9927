"""Jobs API version routing.

Legacy single-task jobs are served by Jobs API 2.0, multi-task jobs only by
2.1. The version is derived from the settings at hand on every call and is
passed explicitly to the adapter; it is never stored on a job id, since a
job can be migrated from one shape to the other between two calls.
"""

from __future__ import annotations

import logging
from enum import Enum

from dbjobs.core.settings import MULTI_TASK_FORMAT, JobSettings

logger = logging.getLogger(__name__)


class ApiVersion(str, Enum):
    """Wire protocol version of the Jobs API."""

    LEGACY = "2.0"
    MULTI_TASK = "2.1"

    @property
    def prefix(self) -> str:
        return f"/api/{self.value}"


def is_multi_task(settings: JobSettings | None) -> bool:
    """Return True if the settings describe a multi-task job."""
    if settings is None:
        return False
    return settings.format == MULTI_TASK_FORMAT or len(settings.tasks) > 0


def select_version(settings: JobSettings | None) -> ApiVersion:
    """Pick the API version a job with these settings must be addressed by."""
    version = ApiVersion.MULTI_TASK if is_multi_task(settings) else ApiVersion.LEGACY
    logger.debug(
        "Routing job %r to Jobs API %s",
        getattr(settings, "name", None),
        version.value,
    )
    return version
