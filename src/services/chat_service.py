"""Chat session and message persistence.

Sessions thread user prompts and assistant replies; generation jobs post
their results here. Deleting a session removes its messages and jobs.
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from src.db.models import (
    ChatMessage,
    ChatRole,
    ChatSession,
    ChatSessionStatus,
    Product,
    utc_now_iso,
)
from src.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ChatService:
    """Owner-scoped chat session CRUD plus message threading."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create_session(
        self,
        owner_id: str,
        product_id: str | None = None,
        title: str | None = None,
    ) -> ChatSession:
        """Open a new session, optionally bound to one of the owner's products.

        Raises:
            NotFoundError: If the product is absent or not the owner's.
        """
        async with self.session_factory() as session:
            if product_id is not None:
                product = await session.get(Product, product_id)
                if product is None or product.owner_id != owner_id:
                    raise NotFoundError("Product", product_id)
            chat = ChatSession(owner_id=owner_id, product_id=product_id, title=title)
            session.add(chat)
            await session.commit()
        return chat

    async def get_session(
        self, owner_id: str, session_id: str, with_messages: bool = False
    ) -> ChatSession:
        """Fetch an owner's session.

        Raises:
            NotFoundError: If absent or owned by someone else.
        """
        stmt = select(ChatSession).where(ChatSession.id == session_id)
        if with_messages:
            stmt = stmt.options(
                selectinload(ChatSession.messages),
                selectinload(ChatSession.generation_jobs),
            )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            chat = result.scalar_one_or_none()
        if chat is None or chat.owner_id != owner_id:
            raise NotFoundError("ChatSession", session_id)
        return chat

    async def list_sessions(self, owner_id: str) -> list[ChatSession]:
        """List an owner's sessions, most recently active first."""
        stmt = (
            select(ChatSession)
            .where(ChatSession.owner_id == owner_id)
            .order_by(ChatSession.updated_at.desc())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_session(
        self,
        owner_id: str,
        session_id: str,
        title: str | None = None,
        archived: bool | None = None,
    ) -> ChatSession:
        """Rename or archive a session."""
        async with self.session_factory() as session:
            chat = await session.get(ChatSession, session_id)
            if chat is None or chat.owner_id != owner_id:
                raise NotFoundError("ChatSession", session_id)
            if title is not None:
                title = title.strip()
                if not title or len(title) > 200:
                    raise ValidationError("Title must be 1-200 characters")
                chat.title = title
            if archived is not None:
                chat.status = (
                    ChatSessionStatus.archived.value
                    if archived
                    else ChatSessionStatus.active.value
                )
            chat.updated_at = utc_now_iso()
            await session.commit()
        return chat

    async def delete_session(self, owner_id: str, session_id: str) -> None:
        """Delete a session with its messages and generation jobs."""
        async with self.session_factory() as session:
            chat = await session.get(ChatSession, session_id)
            if chat is None or chat.owner_id != owner_id:
                raise NotFoundError("ChatSession", session_id)
            await session.delete(chat)
            await session.commit()
        logger.info("Deleted chat session %s", session_id)

    async def add_message(
        self,
        session_id: str,
        role: ChatRole,
        content: str | None = None,
        media_url: str | None = None,
        media_data: str | None = None,
        metadata: dict[str, Any] | None = None,
        generation_job_id: str | None = None,
    ) -> ChatMessage:
        """Append a message to a session.

        Raises:
            ValueError: If both a media reference and inline media are given.
        """
        if media_url and media_data:
            raise ValueError("A message carries either media_url or media_data, not both")
        message = ChatMessage(
            session_id=session_id,
            role=role.value,
            content=content,
            media_url=media_url,
            media_data=media_data,
            message_metadata=metadata,
            generation_job_id=generation_job_id,
        )
        async with self.session_factory() as session:
            session.add(message)
            await session.commit()
        return message

    async def touch_session(self, session_id: str) -> None:
        """Bump the session's updated_at."""
        async with self.session_factory() as session:
            await session.execute(
                update(ChatSession)
                .where(ChatSession.id == session_id)
                .values(updated_at=utc_now_iso())
            )
            await session.commit()

