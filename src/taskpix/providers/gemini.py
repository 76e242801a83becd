# src/taskpix/providers/gemini.py

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from google import genai
from google.genai import types

from ..core.errors import GenerationError, GenerationErrorKind, make_error
from ..core.models import GeneratedImage, GenerationRequest
from ..cache.integrity import sniff_mime
from ..logging_setup import redact_base64
from .base import BaseImageProvider, load_reference_image

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_IMAGE_MODEL = "gemini-2.5-flash-image"


def _coerce_bytes(blob: Any) -> bytes | None:
    if isinstance(blob, (bytes, bytearray)):
        return bytes(blob)
    if isinstance(blob, str) and blob:
        try:
            return base64.b64decode(blob)
        except ValueError:
            return None
    return None


def _first_inline_image(response: Any) -> GeneratedImage | None:
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is None:
                continue
            data = _coerce_bytes(getattr(inline, "data", None))
            if not data:
                continue
            mime = getattr(inline, "mime_type", None) or sniff_mime(data)
            return GeneratedImage(data=data, mime_type=mime)
    return None


def _describe_response(response: Any) -> str:
    try:
        dump = response.model_dump(exclude_none=True)
    except Exception:
        return "<unavailable>"
    return json.dumps(redact_base64(dump), ensure_ascii=False, default=str)[:4000]


class GeminiImageProvider(BaseImageProvider):
    """
    Text-to-image through Gemini's multimodal generate_content.

    There is no edit mode: a reference image is attached as an auxiliary inline
    part next to the prompt.
    """

    name = "gemini"
    default_timeout_seconds = 25.0

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: Any | None = None,
        model: str = DEFAULT_GEMINI_IMAGE_MODEL,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(timeout_seconds)
        self.model = model
        self._client = client
        if client is None and api_key:
            self.configure(api_key)

    def configure(self, api_key: str | None) -> GenerationError | None:
        if not api_key or not api_key.strip():
            return make_error(GenerationErrorKind.API_KEY_MISSING, "API key is required for image generation")
        try:
            self._client = genai.Client(api_key=api_key.strip())
        except Exception as exc:
            logger.warning("Gemini client initialisation failed: %s", exc.__class__.__name__)
            return make_error(
                GenerationErrorKind.API_KEY_INVALID,
                "Failed to initialize Gemini client",
                {"exception": exc.__class__.__name__},
            )
        return None

    def is_configured(self) -> bool:
        return self._client is not None

    async def _generate(self, request: GenerationRequest, prompt: str) -> GeneratedImage | GenerationError:
        contents: list[Any] = [prompt]
        reference = load_reference_image(request.reference_image_path)
        if reference is not None:
            contents.append(types.Part.from_bytes(data=reference.data, mime_type=reference.mime_type))
            logger.info(
                "Gemini: attached reference image %s (%s, %d KB)",
                reference.path.name,
                reference.mime_type,
                round(len(reference.data) / 1024),
            )

        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
        )

        logger.debug(
            "Gemini: response candidates=%d model_version=%s",
            len(getattr(response, "candidates", None) or []),
            getattr(response, "model_version", None),
        )

        image = _first_inline_image(response)
        if image is None:
            logger.warning("Gemini: no image data in response: %s", _describe_response(response))
            return make_error(GenerationErrorKind.SERVICE_UNAVAILABLE, "No image data received from API")

        logger.info("Gemini: received image (%s, %d KB)", image.mime_type, round(len(image.data) / 1024))
        return image
