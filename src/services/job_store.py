"""Job store: the persistence boundary for sync and generation jobs.

Pure data access with state machine validation. Every operation opens its
own short-lived session, so orchestrator tasks and request handlers never
share a session. Updates publish a snapshot through the injected
ProgressNotifier after the commit, which keeps the store authoritative
and the live channel strictly secondary.
"""

import logging
from enum import Enum
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models import (
    JOB_MODELS,
    GenerationJob,
    GenerationJobStatus,
    JobType,
    SyncJob,
    SyncJobStatus,
    utc_now_iso,
)
from src.errors import NotFoundError
from src.services.progress_notifier import ProgressNotifier
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

Job = SyncJob | GenerationJob

INTERRUPTED_MESSAGE = "Interrupted by server restart"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition.

    Attributes:
        current_state: The current state of the job.
        attempted_state: The state that was attempted.
        allowed_transitions: Valid transition targets from current state.
    """

    def __init__(
        self,
        current_state: str,
        attempted_state: str,
        allowed_transitions: list[str],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.allowed_transitions = allowed_transitions
        allowed_str = ", ".join(allowed_transitions) or "none (terminal)"
        super().__init__(
            f"Cannot transition from '{current_state}' to '{attempted_state}'. "
            f"Allowed transitions: {allowed_str}"
        )


class TerminalJobError(InvalidStateTransition):
    """Raised on any write to a job that already completed or failed."""

    def __init__(self, job_id: str, current_state: str) -> None:
        self.current_state = current_state
        self.attempted_state = current_state
        self.allowed_transitions = []
        Exception.__init__(
            self, f"Job '{job_id}' is already {current_state}; no further updates allowed"
        )


# Valid state transitions per job family
SYNC_TRANSITIONS: dict[str, list[str]] = {
    SyncJobStatus.pending.value: [SyncJobStatus.fetching.value, SyncJobStatus.failed.value],
    SyncJobStatus.fetching.value: [
        SyncJobStatus.processing.value,
        SyncJobStatus.failed.value,
    ],
    SyncJobStatus.processing.value: [
        SyncJobStatus.completed.value,
        SyncJobStatus.failed.value,
    ],
    SyncJobStatus.completed.value: [],  # terminal
    SyncJobStatus.failed.value: [],  # terminal, a retry is a new job
}

GENERATION_TRANSITIONS: dict[str, list[str]] = {
    GenerationJobStatus.pending.value: [
        GenerationJobStatus.processing.value,
        GenerationJobStatus.failed.value,
    ],
    GenerationJobStatus.processing.value: [
        GenerationJobStatus.completed.value,
        GenerationJobStatus.failed.value,
    ],
    GenerationJobStatus.completed.value: [],  # terminal
    GenerationJobStatus.failed.value: [],  # terminal
}

VALID_TRANSITIONS: dict[JobType, dict[str, list[str]]] = {
    JobType.sync: SYNC_TRANSITIONS,
    JobType.generation: GENERATION_TRANSITIONS,
}

ACTIVE_STATUSES: dict[JobType, tuple[str, ...]] = {
    JobType.sync: (
        SyncJobStatus.pending.value,
        SyncJobStatus.fetching.value,
        SyncJobStatus.processing.value,
    ),
    JobType.generation: (
        GenerationJobStatus.pending.value,
        GenerationJobStatus.processing.value,
    ),
}


def _value(status: str | Enum) -> str:
    return status.value if isinstance(status, Enum) else status


def job_snapshot(job: Job) -> dict[str, Any]:
    """Serialize a job to the payload sent to live subscribers and pollers."""
    snapshot: dict[str, Any] = {
        "id": job.id,
        "type": job.job_type.value,
        "status": job.status,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "error_message": job.error_message,
    }
    if isinstance(job, SyncJob):
        snapshot.update(
            connection_id=job.connection_id,
            only_in_stock=job.only_in_stock,
            total_products=job.total_products,
            processed_products=job.processed_products,
            created_count=job.created_count,
            updated_count=job.updated_count,
            skipped_count=job.skipped_count,
        )
    else:
        snapshot.update(
            session_id=job.session_id,
            message_id=job.message_id,
            product_id=job.product_id,
            progress=job.progress,
            output=job.output,
        )
    return snapshot


class JobStore:
    """Async CRUD and state transitions for both job families.

    Attributes:
        session_factory: Factory for short-lived AsyncSessions.
        notifier: Registry receiving a snapshot after every committed update.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: ProgressNotifier,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier

    async def create(self, job_type: JobType, **fields: Any) -> Job:
        """Persist a new job in pending status.

        Args:
            job_type: Job family to create.
            **fields: Initial column values (owner_id and the family's
                parent reference are required by the schema).

        Returns:
            The committed job.
        """
        model = JOB_MODELS[job_type]
        fields.pop("status", None)
        job = model(status="pending", **fields)
        async with self.session_factory() as session:
            session.add(job)
            await session.commit()
        logger.info("Created %s job %s", job_type.value, job.id)
        return job

    async def update_fields(self, job_type: JobType, job_id: str, **fields: Any) -> Job:
        """Apply a partial update with transition validation, then publish.

        A status change must follow the family's transition table. Moving
        into a terminal status stamps completed_at unless one is given.
        Terminal jobs reject every write.

        Raises:
            NotFoundError: If the job does not exist.
            InvalidStateTransition: If the status change is not allowed.
            TerminalJobError: If the job is already completed or failed.
        """
        model = JOB_MODELS[job_type]
        for key in fields:
            if not hasattr(model, key):
                raise ValueError(f"Unknown {job_type.value} job field '{key}'")

        async with self.session_factory() as session:
            job = await session.get(model, job_id)
            if job is None:
                raise NotFoundError(f"{job_type.value.capitalize()}Job", job_id)
            if job.is_terminal:
                raise TerminalJobError(job_id, job.status)

            if "status" in fields:
                target = _value(fields["status"])
                fields["status"] = target
                if target != job.status:
                    allowed = VALID_TRANSITIONS[job_type].get(job.status, [])
                    if target not in allowed:
                        raise InvalidStateTransition(job.status, target, allowed)
                if target in ("completed", "failed"):
                    fields.setdefault("completed_at", utc_now_iso())

            if "error_message" in fields:
                fields["error_message"] = sanitize_error_message(fields["error_message"])

            for key, value in fields.items():
                setattr(job, key, value)
            await session.commit()

        await self.notifier.publish(job_id, job_snapshot(job))
        return job

    async def get_by_id(
        self, job_type: JobType, job_id: str, owner_id: str | None = None
    ) -> Job:
        """Fetch a job, optionally scoped to its owner.

        Raises:
            NotFoundError: If absent or owned by someone else.
        """
        model = JOB_MODELS[job_type]
        async with self.session_factory() as session:
            job = await session.get(model, job_id)
        if job is None or (owner_id is not None and job.owner_id != owner_id):
            raise NotFoundError(f"{job_type.value.capitalize()}Job", job_id)
        return job

    async def list_by_owner(
        self,
        job_type: JobType,
        owner_id: str,
        status: str | Enum | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """List an owner's jobs, newest first, optionally filtered by status."""
        model = JOB_MODELS[job_type]
        stmt = select(model).where(model.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(model.status == _value(status))
        stmt = stmt.order_by(model.created_at.desc()).limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_active(
        self,
        job_type: JobType,
        owner_id: str,
        connection_id: str | None = None,
    ) -> list[Job]:
        """List an owner's non-terminal jobs, newest first.

        Args:
            connection_id: Restrict sync jobs to one connection.
        """
        model = JOB_MODELS[job_type]
        stmt = select(model).where(
            model.owner_id == owner_id,
            model.status.in_(ACTIVE_STATUSES[job_type]),
        )
        if connection_id is not None:
            if job_type is not JobType.sync:
                raise ValueError("connection_id filter applies to sync jobs only")
            stmt = stmt.where(SyncJob.connection_id == connection_id)
        stmt = stmt.order_by(model.created_at.desc())
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def fail_interrupted(self, job_type: JobType) -> int:
        """Mark every non-terminal job of a family as failed.

        Used at startup: the task registry does not survive a restart, so
        any job still active in the store has no runner.

        Returns:
            Number of jobs marked failed.
        """
        model = JOB_MODELS[job_type]
        values: dict[str, Any] = {
            "status": "failed",
            "error_message": INTERRUPTED_MESSAGE,
            "completed_at": utc_now_iso(),
        }
        if job_type is JobType.generation:
            values["progress"] = 100
        stmt = (
            update(model)
            .where(model.status.in_(ACTIVE_STATUSES[job_type]))
            .values(**values)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        count = result.rowcount or 0
        if count:
            logger.warning(
                "Marked %d interrupted %s job(s) as failed", count, job_type.value
            )
        return count
