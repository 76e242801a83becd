# src/taskpix/providers/openai_images.py

from __future__ import annotations

import base64
import logging
from typing import Any, Awaitable, Callable

import httpx
from openai import AsyncOpenAI

from ..cache.integrity import sniff_mime
from ..core.errors import GenerationError, GenerationErrorKind, make_error
from ..core.models import GeneratedImage, GenerationRequest, ImageQuality
from ..core.ports import SettingsStore
from ..core.prompt import with_reference_hint
from .base import BaseImageProvider, ReferenceImage, image_dimensions, load_reference_image

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_IMAGE_MODEL = "gpt-image-1"

SQUARE = "1024x1024"
PORTRAIT = "1024x1536"
LANDSCAPE = "1536x1024"
ALLOWED_SIZES = frozenset({SQUARE, PORTRAIT, LANDSCAPE})

QUALITY_SETTING_KEYS = ("openaiImageQuality", "imageQuality")

_UNKNOWN_QUALITY_MARKERS = ("unknown parameter: 'quality'", "invalid parameter: quality")
_UNKNOWN_FIDELITY_MARKERS = ("unknown parameter: 'input_fidelity'", "invalid parameter: input_fidelity")
_IMAGE_SHAPE_MARKERS = ("expected entry at `image` to be", "must be an array")


def resolve_size(requested: str | None, reference_path: str | None = None) -> str:
    """
    Snap to a size gpt-image-1 accepts.

    A readable reference image wins: its aspect ratio picks landscape (> 1.2),
    portrait (< 0.8) or square.
    """
    size = requested if requested in ALLOWED_SIZES else SQUARE
    if reference_path:
        dims = image_dimensions(reference_path)
        if dims and dims[1] > 0:
            ratio = dims[0] / dims[1]
            if ratio > 1.2:
                size = LANDSCAPE
            elif ratio < 0.8:
                size = PORTRAIT
            else:
                size = SQUARE
    return size


def resolve_quality(explicit: ImageQuality | str | None, settings: SettingsStore | None) -> ImageQuality | None:
    """Explicit option, then the provider-specific setting, then the legacy one."""
    quality = ImageQuality.normalize(explicit)
    if quality is not None:
        return quality
    if settings is None:
        return None
    for key in QUALITY_SETTING_KEYS:
        try:
            raw = settings.get_setting(key)
        except Exception:
            logger.warning("Reading setting %s failed", key, exc_info=True)
            continue
        quality = ImageQuality.normalize(raw)
        if quality is not None:
            return quality
    return None


def _probe_adjustment(exc: Exception, params: dict[str, Any], applied: set[str]) -> str | None:
    """Which single parameter change (if any) answers this rejection."""
    text = str(exc).lower()
    if "quality" in params and "quality" not in applied:
        if any(m in text for m in _UNKNOWN_QUALITY_MARKERS):
            return "quality"
    if "input_fidelity" in params and "input_fidelity" not in applied:
        if any(m in text for m in _UNKNOWN_FIDELITY_MARKERS):
            return "input_fidelity"
    if "image" in params and "image_list" not in applied:
        if any(m in text for m in _IMAGE_SHAPE_MARKERS):
            return "image_list"
    return None


def _apply_adjustment(adjustment: str, params: dict[str, Any]) -> dict[str, Any]:
    adjusted = dict(params)
    if adjustment == "image_list":
        image = adjusted["image"]
        adjusted["image"] = image[0] if isinstance(image, list) else [image]
    else:
        adjusted.pop(adjustment, None)
    return adjusted


class OpenAIImageProvider(BaseImageProvider):
    """
    gpt-image-1 through the Images API.

    With a reference image the edit endpoint is used so the subject keeps the
    requester's likeness; otherwise (or when the edit fails) plain text-to-image.
    Deployments differ in which optional parameters they accept, so rejected
    parameters are dropped and the call repeated. That probing happens inside a
    single attempt and never consumes the retry budget.
    """

    name = "openai"
    default_timeout_seconds = 240.0

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: Any | None = None,
        settings_store: SettingsStore | None = None,
        model: str = DEFAULT_OPENAI_IMAGE_MODEL,
        timeout_seconds: float | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout_seconds)
        self.model = model
        self.settings_store = settings_store
        self._client = client
        self._http_transport = http_transport
        if client is None and api_key:
            self.configure(api_key)

    def configure(self, api_key: str | None) -> GenerationError | None:
        if not api_key or not api_key.strip():
            return make_error(GenerationErrorKind.API_KEY_MISSING, "API key is required for image generation")
        try:
            # Retries and timeouts are owned by the generation layer.
            self._client = AsyncOpenAI(
                api_key=api_key.strip(),
                timeout=httpx.Timeout(self.timeout_seconds, connect=10.0),
                max_retries=0,
            )
        except Exception as exc:
            logger.warning("OpenAI client initialisation failed: %s", exc.__class__.__name__)
            return make_error(
                GenerationErrorKind.API_KEY_INVALID,
                "Failed to initialize OpenAI client",
                {"exception": exc.__class__.__name__},
            )
        return None

    def is_configured(self) -> bool:
        return self._client is not None

    async def _generate(self, request: GenerationRequest, prompt: str) -> GeneratedImage | GenerationError:
        size = resolve_size(request.size, request.reference_image_path)
        quality = resolve_quality(request.quality, self.settings_store)
        logger.info("OpenAI: model=%s size=%s quality=%s", self.model, size, quality or "default")

        result: Any = None
        if request.reference_image_path:
            reference = load_reference_image(request.reference_image_path)
            if reference is None:
                logger.warning("OpenAI edits: reference image unavailable, falling back to text-to-image")
            else:
                try:
                    result = await self._edit(reference, prompt, size, quality)
                except Exception as exc:
                    logger.warning("OpenAI edits failed, falling back to text-to-image: %s", exc)
                    result = None

        if not _has_payload(result):
            params: dict[str, Any] = {"model": self.model, "prompt": prompt, "size": size, "n": 1}
            if quality:
                params["quality"] = quality.value
            result = await self._call_with_probing(self._client.images.generate, params)

        return await self._extract_image(result)

    async def _edit(
        self,
        reference: ReferenceImage,
        prompt: str,
        size: str,
        quality: ImageQuality | None,
    ) -> Any:
        params: dict[str, Any] = {
            "model": self.model,
            "prompt": with_reference_hint(prompt),
            "size": size,
            "n": 1,
            "image": (reference.upload_name, reference.data, reference.mime_type),
            "input_fidelity": "high",
        }
        if quality:
            params["quality"] = quality.value
        logger.info("OpenAI edits: using reference %s (%d KB)", reference.path.name, round(len(reference.data) / 1024))
        return await self._call_with_probing(self._client.images.edit, params)

    async def _call_with_probing(self, call: Callable[..., Awaitable[Any]], params: dict[str, Any]) -> Any:
        applied: set[str] = set()
        while True:
            try:
                return await call(**params)
            except Exception as exc:
                adjustment = _probe_adjustment(exc, params, applied)
                if adjustment is None:
                    raise
                applied.add(adjustment)
                params = _apply_adjustment(adjustment, params)
                logger.info("OpenAI rejected parameter shape (%s); retrying adjusted call", adjustment)

    async def _extract_image(self, result: Any) -> GeneratedImage | GenerationError:
        item = _first_item(result)
        b64 = getattr(item, "b64_json", None) if item is not None else None
        url = getattr(item, "url", None) if item is not None else None

        if b64:
            data = base64.b64decode(b64)
        elif url:
            async with httpx.AsyncClient(transport=self._http_transport, timeout=60.0) as http:
                resp = await http.get(url)
            if resp.status_code >= 400:
                return make_error(
                    GenerationErrorKind.SERVICE_UNAVAILABLE,
                    f"Failed to download image from URL: {resp.status_code} {resp.reason_phrase}",
                )
            data = resp.content
        else:
            return make_error(GenerationErrorKind.SERVICE_UNAVAILABLE, "No image data received from OpenAI API")

        logger.info("OpenAI: received image (%d KB)", round(len(data) / 1024))
        return GeneratedImage(data=data, mime_type=sniff_mime(data))


def _first_item(result: Any) -> Any:
    data = getattr(result, "data", None) or []
    return data[0] if data else None


def _has_payload(result: Any) -> bool:
    item = _first_item(result)
    return item is not None and bool(getattr(item, "b64_json", None) or getattr(item, "url", None))
