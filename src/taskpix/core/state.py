# src/taskpix/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..generation.orchestrator import ImageOrchestrator
from ..store.task_image_store import TaskImageStore


@dataclass
class AppState:
    """
    Application state container.

    - settings: Settings-like object (real Settings or test SimpleNamespace)
    - store: the SQLite record/settings store
    - orchestrator: image generation facade bound to the store and cache
    """

    settings: Any
    store: TaskImageStore
    orchestrator: ImageOrchestrator
