# tests/test_gemini_provider.py

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from taskpix.core.errors import GenerationErrorKind
from taskpix.core.models import GeneratedImage, GenerationOptions, GenerationRequest
from taskpix.providers.gemini import GeminiImageProvider

from .fakes import FakeGeminiModels, fake_gemini_client, gemini_response, inline_part, png_bytes, text_part


def _provider(models: FakeGeminiModels) -> GeminiImageProvider:
    return GeminiImageProvider(client=fake_gemini_client(models))


@pytest.mark.asyncio
async def test_first_inline_image_is_returned() -> None:
    data = png_bytes()
    models = FakeGeminiModels([gemini_response(text_part("here you go"), inline_part(data), inline_part(b"other"))])

    result = await _provider(models).generate(GenerationRequest.build("Run"), "prompt")

    assert isinstance(result, GeneratedImage)
    assert result.data == data
    assert result.mime_type == "image/png"
    call = models.calls[0]
    assert call["model"] == "gemini-2.5-flash-image"
    assert call["contents"] == ["prompt"]
    assert call["config"].response_modalities == ["IMAGE"]


@pytest.mark.asyncio
async def test_base64_string_payload_is_decoded() -> None:
    data = png_bytes((0, 0, 255))
    models = FakeGeminiModels([gemini_response(inline_part(base64.b64encode(data).decode("ascii")))])

    result = await _provider(models).generate(GenerationRequest.build("Run"), "prompt")

    assert isinstance(result, GeneratedImage)
    assert result.data == data


@pytest.mark.asyncio
async def test_reference_image_is_attached_inline(tmp_path: Path) -> None:
    ref = tmp_path / "face.png"
    ref.write_bytes(png_bytes((50, 60, 70)))
    models = FakeGeminiModels([gemini_response(inline_part(png_bytes()))])
    request = GenerationRequest.build("Run", options=GenerationOptions(reference_image_path=str(ref)))

    await _provider(models).generate(request, "prompt")

    contents = models.calls[0]["contents"]
    assert contents[0] == "prompt"
    assert contents[1].inline_data.data == ref.read_bytes()
    assert contents[1].inline_data.mime_type == "image/png"


@pytest.mark.asyncio
async def test_response_without_image_is_service_unavailable() -> None:
    models = FakeGeminiModels([gemini_response(text_part("I cannot draw that"))])

    result = await _provider(models).generate(GenerationRequest.build("Run"), "prompt")

    assert result.kind == GenerationErrorKind.SERVICE_UNAVAILABLE
    assert result.message == "No image data received from API"


@pytest.mark.asyncio
async def test_sdk_exceptions_propagate() -> None:
    models = FakeGeminiModels([RuntimeError("503 UNAVAILABLE")])

    with pytest.raises(RuntimeError):
        await _provider(models).generate(GenerationRequest.build("Run"), "prompt")


@pytest.mark.asyncio
async def test_missing_key() -> None:
    provider = GeminiImageProvider()
    assert not provider.is_configured()
    assert provider.configure(None).kind == GenerationErrorKind.API_KEY_MISSING

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")
    assert result.kind == GenerationErrorKind.API_KEY_MISSING
