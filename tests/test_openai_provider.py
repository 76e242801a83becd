# tests/test_openai_provider.py

from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest
from PIL import Image

from taskpix.core.errors import GenerationErrorKind
from taskpix.core.models import GeneratedImage, GenerationOptions, GenerationRequest, ImageQuality
from taskpix.core.prompt import REFERENCE_IMAGE_HINT
from taskpix.generation.orchestrator import ImageOrchestrator
from taskpix.providers.openai_images import (
    LANDSCAPE,
    PORTRAIT,
    SQUARE,
    OpenAIImageProvider,
    resolve_quality,
    resolve_size,
)

from .fakes import DictSettings, FakeImagesAPI, fake_openai_client, images_response, png_bytes


def _reference(tmp_path: Path, size: tuple[int, int]) -> str:
    path = tmp_path / "me.png"
    Image.new("RGB", size, (120, 90, 60)).save(path, format="PNG")
    return str(path)


def _provider(images: FakeImagesAPI, settings: DictSettings | None = None, **kwargs) -> OpenAIImageProvider:
    return OpenAIImageProvider(client=fake_openai_client(images), settings_store=settings, **kwargs)


def test_resolve_size(tmp_path: Path) -> None:
    assert resolve_size(None) == SQUARE
    assert resolve_size("256x256") == SQUARE
    assert resolve_size(PORTRAIT) == PORTRAIT
    assert resolve_size(SQUARE, _reference(tmp_path, (300, 200))) == LANDSCAPE
    assert resolve_size(LANDSCAPE, _reference(tmp_path, (200, 300))) == PORTRAIT
    assert resolve_size(LANDSCAPE, _reference(tmp_path, (200, 210))) == SQUARE
    assert resolve_size(PORTRAIT, str(tmp_path / "missing.png")) == PORTRAIT


def test_resolve_quality_precedence() -> None:
    settings = DictSettings({"openaiImageQuality": "Medium", "imageQuality": "high"})
    assert resolve_quality("LOW", settings) == ImageQuality.LOW
    assert resolve_quality(None, settings) == ImageQuality.MEDIUM
    assert resolve_quality(None, DictSettings({"imageQuality": "HIGH"})) == ImageQuality.HIGH
    assert resolve_quality(None, DictSettings({"imageQuality": "ultra"})) is None
    assert resolve_quality(None, None) is None


@pytest.mark.asyncio
async def test_text_to_image_uses_generate() -> None:
    images = FakeImagesAPI()
    provider = _provider(images)

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")

    assert isinstance(result, GeneratedImage)
    assert result.mime_type == "image/png"
    assert images.edit_calls == []
    assert images.generate_calls == [{"model": "gpt-image-1", "prompt": "prompt", "size": SQUARE, "n": 1}]


@pytest.mark.asyncio
async def test_unknown_quality_is_dropped_and_call_repeated() -> None:
    images = FakeImagesAPI(generate_script=[Exception("Unknown parameter: 'quality'.")])
    provider = _provider(images, DictSettings({"imageQuality": "high"}))

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")

    assert isinstance(result, GeneratedImage)
    assert images.generate_calls[0]["quality"] == "high"
    assert "quality" not in images.generate_calls[1]


@pytest.mark.asyncio
async def test_quality_probe_does_not_consume_retry_budget(cache, sleep) -> None:
    images = FakeImagesAPI(generate_script=[Exception("Invalid parameter: quality")])
    provider = _provider(images, DictSettings({"openaiImageQuality": "low"}))
    orch = ImageOrchestrator(cache, providers=[provider], provider_name="openai", sleep=sleep)

    result = await orch.generate_image_for("Run")

    assert result.success
    assert len(images.generate_calls) == 2
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_edit_with_reference_image(tmp_path: Path) -> None:
    ref = _reference(tmp_path, (300, 200))
    images = FakeImagesAPI()
    provider = _provider(images)
    request = GenerationRequest.build("Run", options=GenerationOptions(reference_image_path=ref))

    result = await provider.generate(request, "prompt")

    assert isinstance(result, GeneratedImage)
    assert images.generate_calls == []
    call = images.edit_calls[0]
    assert call["size"] == LANDSCAPE
    assert call["input_fidelity"] == "high"
    assert call["prompt"].endswith(REFERENCE_IMAGE_HINT)
    name, data, mime = call["image"]
    assert name == "reference.png"
    assert data == Path(ref).read_bytes()
    assert mime == "image/png"


@pytest.mark.asyncio
async def test_edit_probes_fidelity_and_image_shape_once_each(tmp_path: Path) -> None:
    ref = _reference(tmp_path, (100, 100))
    images = FakeImagesAPI(
        edit_script=[
            Exception("Unknown parameter: 'input_fidelity'."),
            Exception("Expected entry at `image` to be a binary file, got an array"),
        ]
    )
    provider = _provider(images)
    request = GenerationRequest.build("Run", options=GenerationOptions(reference_image_path=ref))

    result = await provider.generate(request, "prompt")

    assert isinstance(result, GeneratedImage)
    assert len(images.edit_calls) == 3
    last = images.edit_calls[-1]
    assert "input_fidelity" not in last
    assert isinstance(last["image"], list) and len(last["image"]) == 1
    assert images.generate_calls == []


@pytest.mark.asyncio
async def test_edit_failure_falls_back_to_generate(tmp_path: Path) -> None:
    ref = _reference(tmp_path, (100, 100))
    images = FakeImagesAPI(edit_script=[Exception("Internal server error")])
    provider = _provider(images)
    request = GenerationRequest.build("Run", options=GenerationOptions(reference_image_path=ref))

    result = await provider.generate(request, "prompt")

    assert isinstance(result, GeneratedImage)
    assert len(images.edit_calls) == 1
    assert images.generate_calls[0]["prompt"] == "prompt"


@pytest.mark.asyncio
async def test_missing_reference_falls_back_to_generate(tmp_path: Path) -> None:
    images = FakeImagesAPI()
    provider = _provider(images)
    request = GenerationRequest.build(
        "Run", options=GenerationOptions(reference_image_path=str(tmp_path / "gone.png"))
    )

    result = await provider.generate(request, "prompt")

    assert isinstance(result, GeneratedImage)
    assert images.edit_calls == []
    assert len(images.generate_calls) == 1


@pytest.mark.asyncio
async def test_unrelated_generate_error_propagates() -> None:
    images = FakeImagesAPI(generate_script=[Exception("Rate limit reached")])
    provider = _provider(images)

    with pytest.raises(Exception, match="Rate limit"):
        await provider.generate(GenerationRequest.build("Run"), "prompt")
    assert len(images.generate_calls) == 1


@pytest.mark.asyncio
async def test_url_result_is_downloaded() -> None:
    payload = png_bytes((1, 1, 1))

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://images.example/out.png"
        return httpx.Response(200, content=payload)

    images = FakeImagesAPI(generate_script=[images_response(url="https://images.example/out.png")])
    provider = _provider(images, http_transport=httpx.MockTransport(handler))

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")

    assert isinstance(result, GeneratedImage)
    assert result.data == payload


@pytest.mark.asyncio
async def test_failed_download_is_service_unavailable() -> None:
    images = FakeImagesAPI(generate_script=[images_response(url="https://images.example/out.png")])
    provider = _provider(images, http_transport=httpx.MockTransport(lambda r: httpx.Response(404)))

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")

    assert result.kind == GenerationErrorKind.SERVICE_UNAVAILABLE
    assert "404" in result.message


@pytest.mark.asyncio
async def test_empty_result_is_service_unavailable() -> None:
    images = FakeImagesAPI(generate_script=[SimpleNamespace(data=[])])
    provider = _provider(images)

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")

    assert result.kind == GenerationErrorKind.SERVICE_UNAVAILABLE


@pytest.mark.asyncio
async def test_timeout_is_network_error() -> None:
    class SlowImages:
        async def generate(self, **kwargs):
            await asyncio.sleep(10)

    provider = OpenAIImageProvider(client=SimpleNamespace(images=SlowImages()), timeout_seconds=0.05)

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")

    assert result.kind == GenerationErrorKind.NETWORK_ERROR
    assert result.message == "API request timeout"


@pytest.mark.asyncio
async def test_unconfigured_provider() -> None:
    provider = OpenAIImageProvider()
    assert not provider.is_configured()
    assert provider.configure("  ").kind == GenerationErrorKind.API_KEY_MISSING

    result = await provider.generate(GenerationRequest.build("Run"), "prompt")
    assert result.kind == GenerationErrorKind.API_KEY_MISSING
