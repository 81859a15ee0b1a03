"""
Errors Module - Exception hierarchy for the import pipeline.
============================================================

Every failure in this package is local to one request or one batch item;
nothing here is process-fatal. The API layer maps these classes onto HTTP
status codes and the CLI onto exit codes.
"""

from typing import Optional


class ZiyuanbaoError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(ZiyuanbaoError):
    """A required setting (API key, database URL) is missing or invalid."""


class NotFoundError(ZiyuanbaoError):
    """A category, staged resource or job does not exist."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class FetchError(ZiyuanbaoError):
    """A remote page could not be retrieved (network error or HTTP status)."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class OutlineError(ZiyuanbaoError):
    """Outline extraction produced nothing usable; stored state is untouched."""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        self.raw_response = raw_response
        super().__init__(message)


class CloudDiskLinkError(ZiyuanbaoError):
    """Pasted text contains no recognisable cloud-disk share URL."""


class AlreadyLinkedError(ZiyuanbaoError):
    """A staged resource was already promoted into the catalog."""

    def __init__(self, resource_id: int, linked_resource_id: int):
        self.resource_id = resource_id
        self.linked_resource_id = linked_resource_id
        super().__init__(
            f"Staged resource {resource_id} is already linked to catalog "
            f"resource {linked_resource_id}"
        )


class JobConflictError(ZiyuanbaoError):
    """A batch job of the same kind is already active for the category."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already pending or running for this target")
