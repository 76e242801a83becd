# src/taskpix/providers/base.py

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..cache.integrity import mime_for_extension
from ..core.errors import GenerationError, GenerationErrorKind, make_error
from ..core.models import GeneratedImage, GenerationRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReferenceImage:
    path: Path
    data: bytes
    mime_type: str

    @property
    def upload_name(self) -> str:
        return f"reference{self.path.suffix.lower() or '.png'}"


def load_reference_image(path: str | None) -> ReferenceImage | None:
    """Read a reference image from disk; a missing or unreadable file means "no reference"."""
    if not path:
        return None
    p = Path(path).expanduser()
    if not p.is_file():
        logger.warning("Reference image not found: %s", p)
        return None
    try:
        data = p.read_bytes()
    except OSError:
        logger.warning("Reference image unreadable: %s", p, exc_info=True)
        return None
    return ReferenceImage(path=p, data=data, mime_type=mime_for_extension(p.suffix))


def image_dimensions(path: str | Path) -> tuple[int, int] | None:
    """(width, height) from the file header, or None when it cannot be parsed."""
    try:
        with Image.open(path) as img:
            return img.size
    except (OSError, UnidentifiedImageError, ValueError):
        return None


class BaseImageProvider(ABC):
    """
    Shared timeout handling for concrete backends.

    Subclasses implement _generate(); generate() runs it under the provider's
    budget and reports expiry as NETWORK_ERROR rather than a raw cancellation.
    """

    name = "base"
    default_timeout_seconds = 60.0

    def __init__(self, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = float(timeout_seconds or self.default_timeout_seconds)

    @abstractmethod
    def is_configured(self) -> bool: ...

    async def generate(self, request: GenerationRequest, prompt: str) -> GeneratedImage | GenerationError:
        if not self.is_configured():
            return make_error(
                GenerationErrorKind.API_KEY_MISSING,
                f"{self.name} client not initialized",
            )
        try:
            return await asyncio.wait_for(self._generate(request, prompt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("%s: request timed out after %.0fs", self.name, self.timeout_seconds)
            return make_error(
                GenerationErrorKind.NETWORK_ERROR,
                "API request timeout",
                {"provider": self.name, "timeout_seconds": self.timeout_seconds},
            )

    @abstractmethod
    async def _generate(self, request: GenerationRequest, prompt: str) -> GeneratedImage | GenerationError: ...
