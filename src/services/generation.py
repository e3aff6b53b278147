"""Generation orchestrator.

Drives AI generation jobs for chat sessions:

    pending -> processing -> completed | failed

The user's message and the job (with the full request as its input) are
committed while the triggering request is still open. The run replays
that persisted input only, calls the generation adapter, stores any
returned media (falling back to inline base64 when the upload fails) and
threads an assistant reply into the session. Failures always surface as
an assistant message plus a failed job; nothing escapes ``run``.
"""

import logging
import time

from src.clients.base import GenerationAdapter
from src.clients.models import GenerationRequest, GenerationResult
from src.db.models import ChatRole, GenerationJob, GenerationJobStatus, JobType, utc_now_iso
from src.errors import NotFoundError
from src.services.chat_service import ChatService
from src.services.credentials import CredentialResolver
from src.services.job_store import JobStore
from src.services.media_storage import (
    MediaContext,
    MediaStorage,
    decode_base64_media,
)
from src.services.progress_notifier import ProgressNotifier
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 10
PROGRESS_CREDENTIALS = 30
PROGRESS_GENERATED = 80
PROGRESS_DONE = 100

_EXTENSIONS = {"image/jpeg": "jpg", "image/webp": "webp"}


def failure_message(error: str) -> str:
    """Assistant reply shown in the chat when a generation fails."""
    return (
        f"❌ **Generation Failed**\n\n{sanitize_error_message(error)}\n\n"
        "Please check your API key settings or try again."
    )


def media_filename(job_id: str, mime_type: str | None) -> str:
    extension = _EXTENSIONS.get(mime_type or "", "png")
    return f"ai-generated-{job_id}-{int(time.time() * 1000)}.{extension}"


class GenerationOrchestrator:
    """Creates and runs generation jobs."""

    def __init__(
        self,
        job_store: JobStore,
        notifier: ProgressNotifier,
        chat: ChatService,
        adapter: GenerationAdapter,
        credentials: CredentialResolver,
        media_storage: MediaStorage,
    ) -> None:
        self.job_store = job_store
        self.notifier = notifier
        self.chat = chat
        self.adapter = adapter
        self.credentials = credentials
        self.media_storage = media_storage

    async def create_job(
        self,
        owner_id: str,
        session_id: str,
        request: GenerationRequest,
    ) -> GenerationJob:
        """Persist the user message, then a pending job that references it.

        Raises:
            NotFoundError: If the session is absent or not the owner's.
        """
        chat_session = await self.chat.get_session(owner_id, session_id)
        message = await self.chat.add_message(
            session_id, ChatRole.user, content=request.prompt
        )
        job = await self.job_store.create(
            JobType.generation,
            owner_id=owner_id,
            session_id=session_id,
            message_id=message.id,
            product_id=chat_session.product_id,
            progress=0,
            input=request.model_dump(mode="json"),
        )
        await self.chat.touch_session(session_id)
        return job

    async def run(self, job_id: str) -> None:
        """Execute a pending generation job to a terminal state. Never raises."""
        try:
            job = await self.job_store.get_by_id(JobType.generation, job_id)
        except NotFoundError:
            logger.warning("Generation job %s vanished before it started", job_id)
            return
        if job.status != GenerationJobStatus.pending.value:
            logger.info(
                "Generation job %s is %s, not pending; skipping", job_id, job.status
            )
            return

        try:
            await self._execute(job)
        except Exception as e:
            logger.exception("Generation job %s failed unexpectedly", job_id)
            await self._fail_best_effort(job, str(e) or type(e).__name__)
        finally:
            self.notifier.unregister(job_id)

    async def _execute(self, job: GenerationJob) -> None:
        await self.job_store.update_fields(
            JobType.generation,
            job.id,
            status=GenerationJobStatus.processing,
            started_at=utc_now_iso(),
            progress=PROGRESS_STARTED,
        )

        request = GenerationRequest.model_validate(job.input)
        await self.job_store.update_fields(
            JobType.generation, job.id, progress=PROGRESS_CREDENTIALS
        )

        credential = await self.credentials.resolve(job.owner_id)
        result = await self.adapter.generate(
            request.prompt,
            request.options,
            request.reference_payloads,
            credential,
        )

        if result.error:
            logger.warning("Generation job %s: adapter reported %s", job.id, result.error)
            await self.chat.add_message(
                job.session_id,
                ChatRole.assistant,
                content=failure_message(result.error),
                metadata={"job_id": job.id, "error": True},
                generation_job_id=job.id,
            )
            await self.job_store.update_fields(
                JobType.generation,
                job.id,
                status=GenerationJobStatus.failed,
                error_message=result.error,
                progress=PROGRESS_DONE,
            )
            await self.chat.touch_session(job.session_id)
            return

        await self.job_store.update_fields(
            JobType.generation, job.id, progress=PROGRESS_GENERATED
        )

        media_url = await self._upload_media(job, result)
        media_data = result.media if result.media and media_url is None else None
        message = await self.chat.add_message(
            job.session_id,
            ChatRole.assistant,
            content=result.text,
            media_url=media_url,
            media_data=media_data,
            metadata={"job_id": job.id, "uploaded_to_storage": media_url is not None},
            generation_job_id=job.id,
        )
        await self.chat.touch_session(job.session_id)

        await self.job_store.update_fields(
            JobType.generation,
            job.id,
            status=GenerationJobStatus.completed,
            progress=PROGRESS_DONE,
            output={
                "text": result.text,
                "has_media": result.has_media,
                "media_url": media_url,
                "message_id": message.id,
            },
        )
        logger.info("Generation job %s completed (message %s)", job.id, message.id)

    async def _upload_media(
        self, job: GenerationJob, result: GenerationResult
    ) -> str | None:
        """Store returned media; None means keep it inline on the message."""
        if not result.media:
            return None
        try:
            payload = decode_base64_media(result.media)
            stored = await self.media_storage.store(
                payload,
                MediaContext(owner_id=job.owner_id, product_id=job.product_id),
                media_filename(job.id, result.media_mime_type),
            )
        except Exception as e:
            logger.warning(
                "Generation job %s: media upload failed, keeping it inline: %s",
                job.id, e,
            )
            return None
        return stored.url

    async def _fail_best_effort(self, job: GenerationJob, error: str) -> None:
        """Post a failure reply and mark the job failed, logging what cannot be done."""
        try:
            await self.chat.add_message(
                job.session_id,
                ChatRole.assistant,
                content=failure_message(error),
                metadata={"job_id": job.id, "error": True},
                generation_job_id=job.id,
            )
            await self.chat.touch_session(job.session_id)
        except Exception:
            logger.exception("Could not post failure message for generation job %s", job.id)

        try:
            await self.job_store.update_fields(
                JobType.generation,
                job.id,
                status=GenerationJobStatus.failed,
                error_message=error,
                progress=PROGRESS_DONE,
            )
        except Exception:
            logger.exception("Could not record failure of generation job %s", job.id)
