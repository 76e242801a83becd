# src/taskpix/generation/orchestrator.py

"""
Image generation facade.

One entry point per use case (generate, regenerate, read back, warm up). The
orchestrator owns request building, cache lookups, per-target deduplication, the
retry loop, durable writes and the record-store update. Providers only turn a
prompt into bytes.

Everything public returns values: a GenerationResult for generation calls, None
or plain data for reads. Provider or storage exceptions never escape.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping

from ..cache.image_cache import ImageCache
from ..cache.integrity import to_data_uri
from ..core.errors import GenerationError, GenerationErrorKind, make_error
from ..core.keys import derive_key
from ..core.models import (
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
    ProgressEvent,
    RequesterProfile,
    TargetRecord,
)
from ..core.ports import ImageProvider, ProgressCallback, TargetRecordStore
from ..core.prompt import build_prompt
from .dedup import InFlightRegistry
from .retry import DEFAULT_MAX_ATTEMPTS, with_retry

logger = logging.getLogger(__name__)

# Failures that will repeat for every remaining target.
_BACKFILL_STOP_KINDS = frozenset(
    {
        GenerationErrorKind.API_KEY_MISSING,
        GenerationErrorKind.API_KEY_INVALID,
        GenerationErrorKind.QUOTA_EXCEEDED,
    }
)


def _emit(callback: ProgressCallback | None, stage: str, percent: int, message: str) -> None:
    if callback is None:
        return
    try:
        callback(ProgressEvent(stage=stage, percent=percent, message=message))
    except Exception:
        logger.warning("Progress callback failed at stage %s", stage, exc_info=True)


def _options_for(profile: RequesterProfile, target: TargetRecord) -> GenerationOptions:
    return GenerationOptions(
        style=profile.style,
        reference_image_path=profile.reference_image_path,
        quality=profile.quality,
        location=target.location,
    )


class ImageOrchestrator:
    def __init__(
        self,
        cache: ImageCache,
        *,
        records: TargetRecordStore | None = None,
        providers: Iterable[ImageProvider] = (),
        provider_name: str = "gemini",
        registry: InFlightRegistry | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.cache = cache
        self.records = records
        self.registry = registry or InFlightRegistry()
        self.max_attempts = max_attempts
        self.on_progress = on_progress
        self._sleep = sleep
        self._providers: dict[str, ImageProvider] = {}
        for provider in providers:
            self.register_provider(provider)
        self._provider_name = provider_name

    # ---- providers ----

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def provider(self) -> ImageProvider | None:
        return self._providers.get(self._provider_name)

    @property
    def available_providers(self) -> list[str]:
        return sorted(self._providers)

    def register_provider(self, provider: ImageProvider) -> None:
        self._providers[provider.name] = provider
        logger.debug("Registered image provider %s", provider.name)

    def set_provider(self, name: str) -> bool:
        name = (name or "").strip().lower()
        if name not in self._providers:
            logger.warning("Unknown image provider %r (available: %s)", name, ", ".join(self.available_providers))
            return False
        self._provider_name = name
        logger.info("Image provider set to %s", name)
        return True

    def is_ready(self) -> bool:
        provider = self.provider
        return provider is not None and provider.is_configured()

    # ---- generation ----

    async def generate_image_for(
        self,
        title: str,
        description: str = "",
        profile_text: str = "",
        options: GenerationOptions | Mapping[str, Any] | None = None,
        target_id: int | None = None,
        *,
        bypass_cache: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult:
        progress = on_progress or self.on_progress
        if not isinstance(options, GenerationOptions):
            options = GenerationOptions.from_mapping(options)
        request = GenerationRequest.build(title, description, profile_text, options, target_id)

        if not self.is_ready():
            logger.warning("Image generation requested but provider %s is not configured", self._provider_name)
            return GenerationResult.fail(
                make_error(GenerationErrorKind.API_KEY_MISSING, f"{self._provider_name} client not initialized")
            )

        key = derive_key(
            request.title,
            request.description,
            request.profile_text,
            request.style,
            request.reference_image_path,
        )
        logger.info(
            "Image request target=%s title=%r style=%s key=%s bypass_cache=%s",
            target_id,
            request.title,
            request.style,
            key[:12],
            bypass_cache,
        )

        if not bypass_cache:
            cached = self.cache.get(key)
            if cached is not None:
                if target_id is not None:
                    self.cache.bind_target(target_id, key)
                    if self.records is not None:
                        error = self._persist(target_id, cached)
                        if error is not None:
                            return GenerationResult.fail(error)
                _emit(progress, "complete", 100, "Loaded image from cache")
                return GenerationResult.ok(cached)

        return await self.registry.run_exclusive(
            target_id,
            lambda: self._generate_fresh(request, key, progress),
        )

    async def regenerate_image_for(
        self,
        target_id: int,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult:
        if self.records is None:
            return GenerationResult.fail(make_error(GenerationErrorKind.UNKNOWN_ERROR, "No record store configured"))
        try:
            target = self.records.get_target(target_id)
            profile = self.records.get_profile() if target is not None else None
        except Exception as exc:
            logger.exception("Loading target %s for regeneration failed", target_id)
            return GenerationResult.fail(
                make_error(GenerationErrorKind.UNKNOWN_ERROR, f"Failed to load task: {exc}", {"target_id": target_id})
            )

        if target is None:
            return GenerationResult.fail(
                make_error(GenerationErrorKind.UNKNOWN_ERROR, "Task not found", {"target_id": target_id})
            )
        if profile is None:
            return GenerationResult.fail(make_error(GenerationErrorKind.UNKNOWN_ERROR, "User profile not found"))

        logger.info("Regenerating image for target %s", target_id)
        return await self.generate_image_for(
            target.title,
            target.description,
            profile.description,
            _options_for(profile, target),
            target.id,
            bypass_cache=True,
            on_progress=on_progress,
        )

    async def _generate_fresh(
        self,
        request: GenerationRequest,
        key: str,
        progress: ProgressCallback | None,
    ) -> GenerationResult:
        provider = self.provider
        if provider is None or not provider.is_configured():
            return GenerationResult.fail(
                make_error(GenerationErrorKind.API_KEY_MISSING, f"{self._provider_name} client not initialized")
            )

        _emit(progress, "preparing", 10, "Preparing image generation")
        prompt = build_prompt(request)
        logger.debug("Prompt for target %s:\n%s", request.target_id, prompt)

        async def attempt(n: int) -> tuple[str, str] | GenerationError:
            _emit(progress, "generating", 30, f"Generating image with {provider.name}")
            outcome = await provider.generate(request, prompt)
            if isinstance(outcome, GenerationError):
                return outcome

            _emit(progress, "processing", 70, "Processing image")
            try:
                filename = self.cache.files.write(outcome.data, request.title, key, outcome.mime_type)
            except OSError as exc:
                logger.error("Writing generated image failed: %s", exc)
                return make_error(
                    GenerationErrorKind.FILE_SAVE_ERROR,
                    f"Failed to save image: {exc}",
                    {"cache_dir": str(self.cache_dir)},
                )
            return filename, to_data_uri(outcome.data, outcome.mime_type)

        result = await with_retry(
            attempt,
            max_attempts=self.max_attempts,
            sleep=self._sleep,
            context=f"{request.title} ({provider.name})",
        )
        if isinstance(result, GenerationError):
            logger.warning("Image generation failed for target %s: %s %s", request.target_id, result.kind, result.message)
            return GenerationResult.fail(result)

        filename, data_uri = result
        self.cache.put(key, data_uri, filename=filename, target_id=request.target_id)

        if request.target_id is not None and self.records is not None:
            error = self._persist(request.target_id, data_uri)
            if error is not None:
                return GenerationResult.fail(error)

        _emit(progress, "complete", 100, "Image generation complete")
        logger.info("Image ready for target %s (%s)", request.target_id, filename)
        return GenerationResult.ok(data_uri)

    def _persist(self, target_id: int, data_uri: str) -> GenerationError | None:
        """Write the image to the record store and read it back."""
        assert self.records is not None
        try:
            self.records.update_target_image(target_id, data_uri)
            stored = self.records.get_target(target_id)
        except Exception as exc:
            logger.exception("Updating image for target %s failed", target_id)
            return make_error(
                GenerationErrorKind.FILE_SAVE_ERROR,
                f"Failed to update task image: {exc}",
                {"target_id": target_id},
            )

        if stored is None:
            logger.error("Target %s missing after image update", target_id)
            return make_error(
                GenerationErrorKind.FILE_SAVE_ERROR,
                "Task not found after image update",
                {"target_id": target_id},
            )
        if stored.image_url != data_uri:
            logger.error("Target %s image mismatch after update", target_id)
            return make_error(
                GenerationErrorKind.FILE_SAVE_ERROR,
                "Stored image does not match the generated image",
                {"target_id": target_id},
            )
        logger.debug("Verified stored image for target %s", target_id)
        return None

    # ---- reads ----

    def get_image_for(self, target_id: int) -> str | None:
        try:
            key = self.cache.key_for_target(target_id)
            if key is not None:
                cached = self.cache.get(key)
                if cached is not None:
                    return cached

            if self.records is None:
                return None
            target = self.records.get_target(target_id)
            if target is None or not target.image_url:
                return None
            if key is not None and target.image_url.startswith("data:image"):
                self.cache.put(key, target.image_url, target_id=target_id)
            return target.image_url
        except Exception:
            logger.exception("Reading image for target %s failed", target_id)
            return None

    # ---- maintenance ----

    def warm_up(self) -> dict[str, int]:
        """Rebuild cache mappings from disk and from stored records."""
        summary = {"files": 0, "restored": 0, "repaired": 0}
        summary["files"] = self.cache.reconcile_from_disk()

        if self.records is not None:
            try:
                profile = self.records.get_profile()
                records = self.records.list_targets_with_images()
            except Exception:
                logger.exception("Loading records for cache warm-up failed")
                records = []
                profile = None

            profile_text = profile.description if profile else ""
            style = profile.style if profile else "anime"
            repaired = self.cache.reconcile_from_records(records, profile_text, style)
            summary["restored"] = len(records)

            for target_id, data_uri in repaired:
                try:
                    self.records.update_target_image(target_id, data_uri)
                    summary["repaired"] += 1
                except Exception:
                    logger.exception("Writing repaired image for target %s failed", target_id)

        self.cache.log_status()
        logger.info("Cache warm-up done: %s", summary)
        return summary

    async def backfill_missing(self, limit: int = 8) -> dict[str, int]:
        """Generate images for stored targets that have none, one at a time."""
        summary = {"attempted": 0, "succeeded": 0, "failed": 0}
        if self.records is None:
            return summary
        try:
            profile = self.records.get_profile()
            targets = self.records.list_targets_missing_images(limit)
        except Exception:
            logger.exception("Loading targets for backfill failed")
            return summary

        profile = profile or RequesterProfile(description="")
        for target in targets:
            summary["attempted"] += 1
            result = await self.generate_image_for(
                target.title,
                target.description,
                profile.description,
                _options_for(profile, target),
                target.id,
            )
            if result.success:
                summary["succeeded"] += 1
            else:
                summary["failed"] += 1
                if result.error is not None and result.error.kind in _BACKFILL_STOP_KINDS:
                    logger.warning("Backfill stopped: %s", result.error.kind)
                    break

        logger.info("Backfill done: %s", summary)
        return summary

    def cache_stats(self) -> dict[str, Any]:
        stats = self.cache.stats()
        stats["inFlight"] = len(self.registry)
        stats["provider"] = self._provider_name
        return stats

    def clear_cache(self) -> None:
        self.cache.clear()

    @property
    def cache_dir(self) -> Path:
        return self.cache.files.directory
