"""Service layer for Storeloom.

Provides the job engine (job store, progress notifier, sync and
generation orchestrators, job supervisor) and the owner-scoped services
the API builds on.
"""

from src.services.job_store import InvalidStateTransition, JobStore
from src.services.job_supervisor import JobSupervisor
from src.services.progress_notifier import ProgressNotifier

__all__ = [
    "JobStore",
    "InvalidStateTransition",
    "JobSupervisor",
    "ProgressNotifier",
]
