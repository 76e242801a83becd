# src/taskpix/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- API keys and the provider choice can also live in the settings table; the
  composition root decides which source wins.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKPIX"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    image_cache_dir: Path

    # ---- Providers ----
    gemini_api_key: Optional[str]
    openai_api_key: Optional[str]
    image_provider: str
    gemini_model: str
    openai_model: str
    gemini_timeout_seconds: float
    openai_timeout_seconds: float

    # ---- Generation tuning ----
    memory_cache_size: int
    memory_cache_ttl_seconds: float
    max_attempts: int
    in_flight_ttl_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskpix") or "taskpix"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskpix"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "taskpix.sqlite3")
        image_cache_dir = _env_path(_k("IMAGE_CACHE_DIR"), data_dir / "image-cache")

        gemini_api_key = _first_env(_k("GEMINI_API_KEY"), "GEMINI_API_KEY", default=None)
        openai_api_key = _first_env(_k("OPENAI_API_KEY"), "OPENAI_API_KEY", default=None)
        image_provider = _env(_k("IMAGE_PROVIDER"), "gemini").strip().lower() or "gemini"

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            image_cache_dir=image_cache_dir,
            gemini_api_key=gemini_api_key,
            openai_api_key=openai_api_key,
            image_provider=image_provider,
            gemini_model=_env(_k("GEMINI_MODEL"), "gemini-2.5-flash-image"),
            openai_model=_env(_k("OPENAI_MODEL"), "gpt-image-1"),
            gemini_timeout_seconds=_env_float(_k("GEMINI_TIMEOUT_SECONDS"), 25.0),
            openai_timeout_seconds=_env_float(_k("OPENAI_TIMEOUT_SECONDS"), 240.0),
            memory_cache_size=_env_int(_k("MEMORY_CACHE_SIZE"), 50),
            memory_cache_ttl_seconds=_env_float(_k("MEMORY_CACHE_TTL_SECONDS"), 24 * 60 * 60.0),
            max_attempts=_env_int(_k("MAX_ATTEMPTS"), 3),
            in_flight_ttl_seconds=_env_float(_k("IN_FLIGHT_TTL_SECONDS"), 300.0),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
