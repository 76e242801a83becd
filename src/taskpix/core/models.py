# src/taskpix/core/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from .errors import GenerationError


class ArtStyle(StrEnum):
    """Illustration styles a requester profile can choose from."""

    ANIME = "anime"
    CARTOON = "cartoon"
    MINIMALIST = "minimalist"
    WATERCOLOR = "watercolor"
    REALISTIC = "realistic"
    PIXEL = "pixel"
    SKETCH = "sketch"

    @classmethod
    def parse(cls, raw: str | None) -> ArtStyle:
        if not raw:
            return cls.ANIME
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.ANIME


class ImageQuality(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def normalize(cls, raw: Any) -> ImageQuality | None:
        """Case-insensitive parse; anything unrecognised means "unset"."""
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    style: ArtStyle = ArtStyle.ANIME
    reference_image_path: str | None = None
    quality: ImageQuality | None = None
    size: str | None = None
    location: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> GenerationOptions:
        if not raw:
            return cls()
        ref = raw.get("reference_image_path") or raw.get("referenceImagePath")
        return cls(
            style=ArtStyle.parse(raw.get("style")),
            reference_image_path=str(ref) if ref else None,
            quality=ImageQuality.normalize(raw.get("quality")),
            size=str(raw["size"]) if raw.get("size") else None,
            location=str(raw["location"]) if raw.get("location") else None,
        )


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Everything needed for one logical generation. Built per call, never mutated."""

    title: str
    description: str = ""
    profile_text: str = ""
    style: ArtStyle = ArtStyle.ANIME
    reference_image_path: str | None = None
    quality: ImageQuality | None = None
    size: str | None = None
    location: str | None = None
    target_id: int | None = None

    @classmethod
    def build(
        cls,
        title: str,
        description: str | None = "",
        profile_text: str | None = "",
        options: GenerationOptions | None = None,
        target_id: int | None = None,
    ) -> GenerationRequest:
        opts = options or GenerationOptions()
        return cls(
            title=title or "",
            description=description or "",
            profile_text=profile_text or "",
            style=opts.style,
            reference_image_path=opts.reference_image_path,
            quality=opts.quality,
            size=opts.size,
            location=opts.location,
            target_id=target_id,
        )


@dataclass(frozen=True, slots=True)
class TargetRecord:
    id: int
    title: str
    description: str = ""
    image_url: str | None = None
    location: str | None = None


@dataclass(frozen=True, slots=True)
class RequesterProfile:
    description: str
    style: ArtStyle = ArtStyle.ANIME
    reference_image_path: str | None = None
    quality: ImageQuality | None = None


@dataclass(frozen=True, slots=True)
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    stage: str  # preparing | generating | processing | complete
    percent: int
    message: str


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Success carries image_url (a data URI), failure carries error."""

    success: bool
    image_url: str | None = None
    error: GenerationError | None = None

    @classmethod
    def ok(cls, image_url: str) -> GenerationResult:
        return cls(success=True, image_url=image_url)

    @classmethod
    def fail(cls, error: GenerationError) -> GenerationResult:
        return cls(success=False, error=error)

    def as_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "imageUrl": self.image_url}
        assert self.error is not None
        return {"success": False, "error": self.error.as_dict()}
