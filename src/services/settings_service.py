"""Service for per-owner settings.

Owners are created on first sight (identity comes from the caller), and
hold the optional generation API key override. Every change to the
override bumps ``credential_version`` so cached generation clients keyed
by the old version are never reused.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models import User, utc_now_iso
from src.errors import NotFoundError
from src.services.credential_encryption import CredentialCipher

logger = logging.getLogger(__name__)


def generation_key_aad(owner_id: str) -> str:
    return f"generation_key:{owner_id}"


class SettingsService:
    """Owner lookup and generation key management."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: CredentialCipher,
    ) -> None:
        self.session_factory = session_factory
        self.cipher = cipher

    async def ensure_owner(self, owner_id: str) -> User:
        """Return the owner row, creating it if absent."""
        async with self.session_factory() as session:
            user = await session.get(User, owner_id)
            if user is None:
                user = User(id=owner_id)
                session.add(user)
                await session.commit()
                logger.info("Created owner %s", owner_id)
        return user

    async def get_settings(self, owner_id: str) -> dict:
        """Return the owner's settings without revealing the key."""
        async with self.session_factory() as session:
            user = await session.get(User, owner_id)
        if user is None:
            raise NotFoundError("User", owner_id)
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "has_generation_key": user.generation_key_encrypted is not None,
            "credential_version": user.credential_version,
        }

    async def set_generation_key(self, owner_id: str, api_key: str | None) -> int:
        """Set or clear (empty/None) the owner's generation key override.

        Returns:
            The new credential version.
        """
        async with self.session_factory() as session:
            user = await session.get(User, owner_id)
            if user is None:
                raise NotFoundError("User", owner_id)
            if api_key and api_key.strip():
                user.generation_key_encrypted = self.cipher.seal(
                    {"api_key": api_key.strip()}, generation_key_aad(owner_id)
                )
            else:
                user.generation_key_encrypted = None
            user.credential_version += 1
            user.updated_at = utc_now_iso()
            await session.commit()
            version = user.credential_version
        logger.info("Generation key for owner %s updated (version %d)", owner_id, version)
        return version
