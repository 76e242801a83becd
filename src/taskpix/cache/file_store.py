# src/taskpix/cache/file_store.py

from __future__ import annotations

import logging
import re
import time
from pathlib import Path

from ..core.keys import FRAGMENT_LENGTH
from .integrity import extension_for_mime

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

# task_<epoch ms>_<key fragment>_<safe title>.<ext>
_FILENAME_RE = re.compile(r"^task_(\d+)_([A-Za-z0-9]{%d})(?:_([^.]+))?(\.[A-Za-z0-9]+)$" % FRAGMENT_LENGTH)
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_\s-]")
_WHITESPACE_RE = re.compile(r"\s+")

SAFE_TITLE_MAX = 15
UNTITLED = "untitled"


def safe_title(title: str) -> str:
    """Filesystem-safe, ASCII-only transform of a task title ("" if nothing survives)."""
    cleaned = _UNSAFE_CHARS_RE.sub("", title or "").strip()
    return _WHITESPACE_RE.sub("_", cleaned)[:SAFE_TITLE_MAX]


def extract_fragment(filename: str) -> str | None:
    m = _FILENAME_RE.match(filename)
    return m.group(2) if m else None


def extract_title(filename: str) -> str | None:
    """Safe-title segment of a cache filename, if it has one."""
    m = _FILENAME_RE.match(filename)
    return m.group(3) if m else None


class ImageFileStore:
    """
    Durable image tier: one flat directory of generated files.

    There is no index file. Each filename embeds a sortable millisecond
    timestamp and the first 8 characters of the cache key, so the newest file for
    a key is the lexicographically last match.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self._dir = Path(cache_dir)
        if not self._dir.exists():
            self._dir.mkdir(parents=True, exist_ok=True)
            logger.info("Image cache directory created: %s", self._dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def list_images(self) -> list[str]:
        if not self._dir.exists():
            return []
        return sorted(
            p.name for p in self._dir.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
        )

    def path_for(self, filename: str) -> Path:
        return self._dir / Path(filename).name

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def read(self, filename: str) -> bytes:
        return self.path_for(filename).read_bytes()

    def size_of(self, filename: str) -> int:
        return self.path_for(filename).stat().st_size

    def write(self, data: bytes, title: str, key: str, mime_type: str = "image/png") -> str:
        """Persist one generated image and return its filename. OSError propagates."""
        self._dir.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)
        name = safe_title(title) or UNTITLED
        filename = f"task_{stamp}_{key[:FRAGMENT_LENGTH]}_{name}{extension_for_mime(mime_type)}"
        self.path_for(filename).write_bytes(data)
        logger.info("Image saved to cache: %s (%d KB)", filename, round(len(data) / 1024))
        return filename

    def find_by_fragment(self, fragment: str) -> str | None:
        if not fragment:
            return None
        matches = [f for f in self.list_images() if extract_fragment(f) == fragment]
        return matches[-1] if matches else None

    def find_for_repair(self, key: str, name: str) -> str | None:
        """Newest file whose fragment equals the key's, or whose title segment equals safe_title(name)."""
        fragment = key[:FRAGMENT_LENGTH]
        safe = safe_title(name)
        matches = [
            f for f in self.list_images()
            if (fragment and extract_fragment(f) == fragment) or (safe and extract_title(f) == safe)
        ]
        return matches[-1] if matches else None
