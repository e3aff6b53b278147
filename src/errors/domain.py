"""Typed domain exceptions for API error mapping and job failure handling.

These exceptions provide stronger API contract guarantees than
string-based error message matching. Routes rely on the registered
exception handlers to return the matching HTTP status codes.

Usage:
    # In service layer
    raise NotFoundError("StoreConnection", connection_id)

    # In an adapter
    raise AdapterError("woocommerce", "Authentication failed")
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict (e.g., sync already running). Maps to HTTP 409."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class AdapterError(DomainError):
    """Network, auth or format failure from an external collaborator.

    Raised inside a job run and recorded as the job's terminal failure.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(message)
        self.source = source


class PartialItemError(DomainError):
    """A single catalog item failed mid-batch; the batch continues."""

    def __init__(self, external_id: str, message: str) -> None:
        super().__init__(f"Item {external_id}: {message}")
        self.external_id = external_id
