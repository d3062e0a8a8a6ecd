"""
Error Taxonomy

Every failure that leaves the core is one of these types. Callers (the
HTTP layer, a CLI, tests) decide what to do based on the type alone:

- NotFoundError: the entity does not exist in the caller's partition
- InvalidInputError: rejected before any store call
- UnsupportedOperationError: deliberately not implemented
- Storage errors (see services.storage.interface): conflict, throughput,
  unavailable

Each error carries the HTTP status the outer layer should answer with.
"""

from typing import Optional


class TrackerError(Exception):
    """Base exception for all expected failures."""

    http_status: int = 500
    retryable: bool = False


class NotFoundError(TrackerError):
    """Referenced entity is absent or owned by another user."""

    http_status = 404

    def __init__(self, entity: str, identifier: str):
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class InvalidInputError(TrackerError):
    """
    Input failed validation.

    `issues` holds one dict per problem (field, message) so the outer
    layer can render them next to the offending fields.
    """

    http_status = 422

    def __init__(self, message: str, issues: Optional[list[dict]] = None):
        super().__init__(message)
        self.issues = issues or []


class MissingParameterError(InvalidInputError):
    """A required locator was not supplied at all."""

    http_status = 400


class UnsupportedOperationError(TrackerError):
    """Operation exists at the boundary but is intentionally not implemented."""

    http_status = 501


def http_status_for(exc: BaseException) -> int:
    """Map any exception to the HTTP status the outer layer should use."""
    if isinstance(exc, TrackerError):
        return exc.http_status
    return 500
