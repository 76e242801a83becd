# src/taskpix/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the generation layer.

The orchestrator depends on Protocols instead of concrete implementations.
This keeps backends and storage swappable and makes testing easier.
"""

from typing import Callable, Protocol

from .errors import GenerationError
from .models import GeneratedImage, GenerationRequest, ProgressEvent, RequesterProfile, TargetRecord

ProgressCallback = Callable[[ProgressEvent], None]
# Advisory UI feedback only; may be skipped entirely.


class ImageProvider(Protocol):
    """A generative image backend bound to its own timeout budget."""

    name: str
    timeout_seconds: float

    def is_configured(self) -> bool: ...

    async def generate(
            self,
            request: GenerationRequest,
            prompt: str,
    ) -> GeneratedImage | GenerationError: ...


class SettingsStore(Protocol):
    def get_setting(self, key: str) -> str | None: ...


class TargetRecordStore(Protocol):
    """The external record store holding tasks, the requester profile and image bindings."""

    def list_targets_with_images(self) -> list[TargetRecord]: ...
    def list_targets_missing_images(self, limit: int = 32) -> list[TargetRecord]: ...
    def get_target(self, target_id: int) -> TargetRecord | None: ...
    def get_profile(self) -> RequesterProfile | None: ...
    def update_target_image(self, target_id: int, image_url: str) -> None: ...
