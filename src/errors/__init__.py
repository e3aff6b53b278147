"""Error taxonomy for Storeloom.

Domain errors surface synchronously at job-creation time and map to HTTP
status codes. Adapter and per-item errors are raised inside job runs and
converted into terminal job state by the orchestrators.
"""

from src.errors.domain import (
    AdapterError,
    ConflictError,
    DomainError,
    NotFoundError,
    PartialItemError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "AdapterError",
    "PartialItemError",
]
