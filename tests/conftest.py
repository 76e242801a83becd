# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskpix.cache.file_store import ImageFileStore
from taskpix.cache.image_cache import ImageCache
from taskpix.cache.memory_cache import MemoryImageCache
from taskpix.core.state import AppState
from taskpix.generation.orchestrator import ImageOrchestrator
from taskpix.store.task_image_store import TaskImageStore

from .fakes import RecordingSleep, ScriptedProvider


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's environment and .env.
    """
    return SimpleNamespace(
        app_name="taskpix-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        db_path=tmp_path / "data" / "taskpix.sqlite3",
        image_cache_dir=tmp_path / "data" / "image-cache",
        gemini_api_key=None,
        openai_api_key=None,
        image_provider="gemini",
        gemini_model="gemini-2.5-flash-image",
        openai_model="gpt-image-1",
        gemini_timeout_seconds=25.0,
        openai_timeout_seconds=240.0,
        memory_cache_size=50,
        memory_cache_ttl_seconds=86400.0,
        max_attempts=3,
        in_flight_ttl_seconds=300.0,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskImageStore:
    return TaskImageStore(settings.db_path)


@pytest.fixture()
def cache(tmp_path: Path) -> ImageCache:
    return ImageCache(MemoryImageCache(max_entries=50), ImageFileStore(tmp_path / "image-cache"))


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def provider() -> ScriptedProvider:
    return ScriptedProvider(name="gemini")


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskImageStore, cache: ImageCache,
          provider: ScriptedProvider, sleep: RecordingSleep) -> AppState:
    """
    AppState wired with a scripted provider.

    NOTE: We keep the real SQLite store and file cache here because
    their correctness is part of what we want to test.
    """
    orchestrator = ImageOrchestrator(
        cache,
        records=store,
        providers=[provider, ScriptedProvider(name="openai", configured=False)],
        provider_name="gemini",
        sleep=sleep,
    )
    return AppState(settings=settings, store=store, orchestrator=orchestrator)
