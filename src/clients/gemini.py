"""Gemini generation adapter.

Uses the google-genai SDK to produce text and image content from a prompt
plus optional reference images. SDK clients are cached per
(owner_id, credential_version, is_override): an owner changing their
key bumps the version, and falling back to the default key flips the
override flag, so the next call builds a fresh client and the stale
entry is evicted.
"""

import base64
import binascii
import logging
import os

from google import genai
from google.genai import types

from src.clients.models import (
    GenerationCredential,
    GenerationOptions,
    GenerationResult,
)
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-pro-image-preview"
REFERENCE_MIME_TYPE = "image/jpeg"


def get_generation_model() -> str:
    """Model name from GENERATION_MODEL, falling back to the image preview model."""
    return os.environ.get("GENERATION_MODEL", "").strip() or DEFAULT_MODEL


class GeminiGenerationAdapter:
    """GenerationAdapter backed by ``client.aio.models.generate_content``."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model or get_generation_model()
        self._clients: dict[tuple[str, int, bool], genai.Client] = {}

    def _build_client(self, api_key: str) -> genai.Client:
        return genai.Client(api_key=api_key)

    def get_client(self, credential: GenerationCredential) -> genai.Client:
        """Return the cached client for this credential version, building it once."""
        key = credential.cache_key
        client = self._clients.get(key)
        if client is None:
            stale = [k for k in self._clients if k[0] == credential.owner_id]
            for old_key in stale:
                del self._clients[old_key]
            client = self._build_client(credential.api_key)
            self._clients[key] = client
            logger.debug(
                "Built generation client for owner %s (version %d)",
                credential.owner_id, credential.version,
            )
        return client

    def _build_contents(
        self, prompt: str, reference_payloads: list[str]
    ) -> list[types.Part]:
        parts = [types.Part.from_text(text=prompt)]
        for payload in reference_payloads:
            try:
                data = base64.b64decode(payload, validate=True)
            except binascii.Error as e:
                raise ValueError(f"Reference image is not valid base64: {e}") from e
            parts.append(types.Part.from_bytes(data=data, mime_type=REFERENCE_MIME_TYPE))
        return parts

    def _build_config(self, options: GenerationOptions) -> types.GenerateContentConfig:
        tools = [types.Tool(google_search=types.GoogleSearch())] if options.use_search else None
        return types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"],
            image_config=types.ImageConfig(
                aspect_ratio=options.aspect_ratio.value,
                image_size=options.image_size.value,
            ),
            tools=tools,
        )

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        reference_payloads: list[str],
        credential: GenerationCredential,
    ) -> GenerationResult:
        try:
            client = self.get_client(credential)
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=self._build_contents(prompt, reference_payloads),
                config=self._build_config(options),
            )
        except Exception as e:
            logger.warning("Generation call failed: %s", sanitize_error_message(str(e)))
            return GenerationResult(
                error=sanitize_error_message(str(e)) or "Failed to generate content"
            )

        return self._parse_response(response)

    def _parse_response(self, response: types.GenerateContentResponse) -> GenerationResult:
        """Collect text parts and the last inline image from the first candidate."""
        text: str | None = None
        media: str | None = None
        mime_type: str | None = None

        candidates = response.candidates or []
        if candidates and candidates[0].content and candidates[0].content.parts:
            for part in candidates[0].content.parts:
                if part.text:
                    text = f"{text}{part.text}" if text else part.text
                if part.inline_data and part.inline_data.data:
                    media = base64.b64encode(part.inline_data.data).decode("ascii")
                    mime_type = part.inline_data.mime_type or "image/png"

        if text is None and media is None:
            return GenerationResult(error="The model returned no content")
        return GenerationResult(text=text, media=media, media_mime_type=mime_type)
