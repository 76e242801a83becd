# src/taskpix/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- resolves API keys and the provider choice (settings table first, then env),
- wires the store, the two-tier cache, providers and the orchestrator into AppState.
"""

from __future__ import annotations

import logging

from ..cache.file_store import ImageFileStore
from ..cache.image_cache import ImageCache
from ..cache.memory_cache import MemoryImageCache
from ..config import get_settings
from ..core.ports import SettingsStore
from ..core.state import AppState
from ..generation.dedup import InFlightRegistry
from ..generation.orchestrator import ImageOrchestrator
from ..providers.gemini import GeminiImageProvider
from ..providers.openai_images import OpenAIImageProvider
from ..store.task_image_store import TaskImageStore

logger = logging.getLogger(__name__)

GEMINI_KEY_SETTING = "geminiApiKey"
OPENAI_KEY_SETTING = "openaiApiKey"
PROVIDER_SETTING = "imageProvider"


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.image_cache_dir.mkdir(parents=True, exist_ok=True)


def resolve_api_key(store: TaskImageStore, setting_key: str, env_value: str | None) -> str | None:
    """
    Stored key wins; otherwise the environment key is used and persisted so the
    settings table becomes the single place to rotate it.
    """
    try:
        stored = store.get_setting(setting_key)
    except Exception:
        logger.exception("Reading setting %s failed", setting_key)
        stored = None
    if stored and stored.strip():
        return stored.strip()

    if env_value and env_value.strip():
        try:
            store.set_setting(setting_key, env_value.strip())
            logger.info("Persisted %s from environment", setting_key)
        except Exception:
            logger.exception("Persisting setting %s failed", setting_key)
        return env_value.strip()
    return None


def resolve_provider_name(store: SettingsStore, default: str) -> str:
    try:
        stored = store.get_setting(PROVIDER_SETTING)
    except Exception:
        logger.exception("Reading setting %s failed", PROVIDER_SETTING)
        stored = None
    name = (stored or default or "gemini").strip().lower()
    return name if name in ("gemini", "openai") else "gemini"


def create_initial_state(*, settings=None, warm_up: bool = True) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = TaskImageStore(settings.db_path)

    gemini = GeminiImageProvider(
        resolve_api_key(store, GEMINI_KEY_SETTING, settings.gemini_api_key),
        model=settings.gemini_model,
        timeout_seconds=settings.gemini_timeout_seconds,
    )
    openai_provider = OpenAIImageProvider(
        resolve_api_key(store, OPENAI_KEY_SETTING, settings.openai_api_key),
        settings_store=store,
        model=settings.openai_model,
        timeout_seconds=settings.openai_timeout_seconds,
    )

    cache = ImageCache(
        MemoryImageCache(settings.memory_cache_size, settings.memory_cache_ttl_seconds),
        ImageFileStore(settings.image_cache_dir),
    )
    orchestrator = ImageOrchestrator(
        cache,
        records=store,
        providers=[gemini, openai_provider],
        provider_name=resolve_provider_name(store, settings.image_provider),
        registry=InFlightRegistry(settings.in_flight_ttl_seconds),
        max_attempts=settings.max_attempts,
    )
    logger.info(
        "Image provider=%s ready=%s cache_dir=%s",
        orchestrator.provider_name,
        orchestrator.is_ready(),
        orchestrator.cache_dir,
    )

    if warm_up:
        orchestrator.warm_up()

    return AppState(settings=settings, store=store, orchestrator=orchestrator)
