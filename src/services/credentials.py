"""Generation credential resolution.

An owner's own key wins; otherwise GOOGLE_AI_API_KEY applies. The result
carries the owner's credential version, which adapters use as part of
their client cache key.
"""

import logging
import os

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.clients.models import GenerationCredential
from src.db.models import User
from src.errors import AdapterError, NotFoundError
from src.services.credential_encryption import (
    CredentialCipher,
    CredentialDecryptionError,
)
from src.services.settings_service import generation_key_aad

logger = logging.getLogger(__name__)


class MissingCredentialError(AdapterError):
    """No generation key is configured for the owner or the process."""

    def __init__(self) -> None:
        super().__init__(
            "generation",
            "GOOGLE_AI_API_KEY environment variable or user-specific API key is not set",
        )


class CredentialResolver:
    """Resolve the generation credential for an owner."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: CredentialCipher,
        default_api_key: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.cipher = cipher
        self._default_api_key = default_api_key

    @property
    def default_api_key(self) -> str | None:
        if self._default_api_key is not None:
            return self._default_api_key
        return os.environ.get("GOOGLE_AI_API_KEY", "").strip() or None

    async def resolve(self, owner_id: str) -> GenerationCredential:
        """Return the owner's credential.

        Raises:
            NotFoundError: If the owner does not exist.
            MissingCredentialError: If neither an override nor a default is set.
        """
        async with self.session_factory() as session:
            user = await session.get(User, owner_id)
        if user is None:
            raise NotFoundError("User", owner_id)

        if user.generation_key_encrypted:
            try:
                payload = self.cipher.open(
                    user.generation_key_encrypted, generation_key_aad(owner_id)
                )
            except CredentialDecryptionError:
                logger.warning(
                    "Generation key for owner %s cannot be decrypted; using default",
                    owner_id,
                )
            else:
                return GenerationCredential(
                    owner_id=owner_id,
                    api_key=payload["api_key"],
                    version=user.credential_version,
                    is_override=True,
                )

        if not self.default_api_key:
            raise MissingCredentialError()
        return GenerationCredential(
            owner_id=owner_id,
            api_key=self.default_api_key,
            version=user.credential_version,
        )
