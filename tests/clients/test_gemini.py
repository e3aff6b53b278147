"""Tests for the Gemini adapter with a stubbed SDK client."""

import base64
from types import SimpleNamespace

import pytest
from google.genai import types

from src.clients.gemini import DEFAULT_MODEL, GeminiGenerationAdapter, get_generation_model
from src.clients.models import (
    AspectRatio,
    GenerationCredential,
    GenerationOptions,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nimage"


def _response(*parts: types.Part) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


class StubModels:
    def __init__(self, response=None, exception=None):
        self.response = response
        self.exception = exception
        self.calls = []

    async def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.exception is not None:
            raise self.exception
        return self.response


def _stub_client(models: StubModels):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


@pytest.fixture
def models():
    return StubModels(response=_response(types.Part(text="Hello")))


@pytest.fixture
def adapter(models, monkeypatch):
    adapter = GeminiGenerationAdapter(model="test-model")
    built = []

    def build(api_key):
        built.append(api_key)
        return _stub_client(models)

    monkeypatch.setattr(adapter, "_build_client", build)
    adapter.built_keys = built
    return adapter


def _credential(version=0, api_key="key-a", owner_id="owner-1", is_override=False):
    return GenerationCredential(
        owner_id=owner_id, api_key=api_key, version=version, is_override=is_override
    )


class TestClientCache:

    def test_client_is_reused_for_same_version(self, adapter):
        first = adapter.get_client(_credential())
        second = adapter.get_client(_credential())
        assert first is second
        assert adapter.built_keys == ["key-a"]

    def test_new_version_evicts_old_client(self, adapter):
        adapter.get_client(_credential(version=1, api_key="old"))
        adapter.get_client(_credential(version=2, api_key="new"))

        assert adapter.built_keys == ["old", "new"]
        assert list(adapter._clients) == [("owner-1", 2, False)]

    def test_fallback_to_default_key_rebuilds_client(self, adapter):
        override = adapter.get_client(_credential(version=1, api_key="mine", is_override=True))
        fallback = adapter.get_client(_credential(version=1, api_key="default"))

        assert override is not fallback
        assert adapter.built_keys == ["mine", "default"]
        assert list(adapter._clients) == [("owner-1", 1, False)]

    def test_owners_do_not_share_clients(self, adapter):
        adapter.get_client(_credential(owner_id="owner-1"))
        adapter.get_client(_credential(owner_id="owner-2"))
        assert len(adapter._clients) == 2


class TestGenerate:

    async def test_request_is_built_from_options(self, adapter, models):
        reference = base64.b64encode(b"ref-bytes").decode()
        options = GenerationOptions(aspect_ratio=AspectRatio.TALL, use_search=True)

        result = await adapter.generate("Make it pop", options, [reference], _credential())

        assert result.text == "Hello"
        assert result.error is None
        call = models.calls[0]
        assert call["model"] == "test-model"
        assert call["contents"][0].text == "Make it pop"
        assert call["contents"][1].inline_data.data == b"ref-bytes"
        assert call["config"].image_config.aspect_ratio == "9:16"
        assert call["config"].tools is not None

    async def test_search_disabled_sends_no_tools(self, adapter, models):
        await adapter.generate("x", GenerationOptions(), [], _credential())
        assert models.calls[0]["config"].tools is None

    async def test_text_and_image_parts_are_collected(self, adapter, models):
        models.response = _response(
            types.Part(text="Here "),
            types.Part(inline_data=types.Blob(data=PNG_BYTES, mime_type="image/png")),
            types.Part(text="it is"),
        )

        result = await adapter.generate("x", GenerationOptions(), [], _credential())

        assert result.text == "Here it is"
        assert base64.b64decode(result.media) == PNG_BYTES
        assert result.media_mime_type == "image/png"
        assert result.has_media

    async def test_empty_response_is_an_error(self, adapter, models):
        models.response = types.GenerateContentResponse(candidates=[])

        result = await adapter.generate("x", GenerationOptions(), [], _credential())

        assert result.error == "The model returned no content"

    async def test_sdk_exception_becomes_error_result(self, adapter, models):
        models.exception = RuntimeError("401 invalid api_key=AIzaBad")

        result = await adapter.generate("x", GenerationOptions(), [], _credential())

        assert result.error is not None
        assert "AIzaBad" not in result.error
        assert result.text is None

    async def test_invalid_reference_payload_is_reported(self, adapter, models):
        result = await adapter.generate("x", GenerationOptions(), ["***"], _credential())

        assert "not valid base64" in result.error
        assert models.calls == []


class TestModelSelection:

    def test_default_model(self, monkeypatch):
        monkeypatch.delenv("GENERATION_MODEL", raising=False)
        assert get_generation_model() == DEFAULT_MODEL

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("GENERATION_MODEL", "gemini-2.5-flash-image")
        assert GeminiGenerationAdapter().model == "gemini-2.5-flash-image"
