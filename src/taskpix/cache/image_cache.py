# src/taskpix/cache/image_cache.py

"""
Two-tier image cache.

Memory (bounded LRU with TTL) in front of the file tier. The key -> filename and
target -> key mappings are caches too: both can be rebuilt at startup from the
cache directory and from the record store, whichever still holds good data.

Best-effort paths (reconciliation, repair, status logging) log and swallow their
own failures; they must never block startup or an unrelated request.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..core.keys import FRAGMENT_LENGTH, derive_key, key_fragment
from ..core.models import TargetRecord
from .file_store import ImageFileStore, extract_fragment
from .integrity import detect_corruption, mime_for_extension, sniff_mime, to_data_uri
from .memory_cache import MemoryImageCache

logger = logging.getLogger(__name__)


class ImageCache:
    def __init__(self, memory: MemoryImageCache, files: ImageFileStore) -> None:
        self.memory = memory
        self.files = files
        self._key_to_file: dict[str, str] = {}  # full key or 8-char fragment -> filename
        self._target_to_key: dict[int, str] = {}
        self._lock = threading.Lock()

    # ---- lookups ----

    def get(self, key: str) -> str | None:
        cached = self.memory.get(key)
        if cached is not None:
            logger.debug("Memory cache hit key=%s", key[:12])
            return cached

        try:
            filename = self._resolve_file(key)
            if filename is None:
                return None
            data_uri = self._load_file(filename)
        except OSError:
            logger.warning("File cache read failed key=%s", key[:12], exc_info=True)
            return None

        logger.debug("File cache hit key=%s file=%s", key[:12], filename)
        self.memory.put(key, data_uri)
        return data_uri

    def put(
        self,
        key: str,
        data_uri: str,
        *,
        filename: str | None = None,
        target_id: int | None = None,
    ) -> None:
        evicted = self.memory.put(key, data_uri)
        if evicted:
            logger.debug("Memory cache evicted key=%s", evicted[:12])
        with self._lock:
            if filename:
                self._key_to_file[key] = filename
            if target_id is not None:
                self._target_to_key[target_id] = key

    def bind_target(self, target_id: int, key: str) -> None:
        with self._lock:
            self._target_to_key[target_id] = key

    def key_for_target(self, target_id: int) -> str | None:
        with self._lock:
            return self._target_to_key.get(target_id)

    def filename_for(self, key: str) -> str | None:
        with self._lock:
            return self._key_to_file.get(key) or self._key_to_file.get(key_fragment(key))

    # ---- reconciliation ----

    def reconcile_from_disk(self, files: Iterable[str] | None = None) -> int:
        """Seed fragment -> filename from filenames alone. Returns the number mapped."""
        try:
            names = sorted(files) if files is not None else self.files.list_images()
            restored = 0
            with self._lock:
                for name in names:
                    fragment = extract_fragment(name)
                    if fragment is None:
                        continue
                    # sorted order: a later (newer) file overrides an older one
                    self._key_to_file[fragment] = name
                    restored += 1
            logger.info("Restored %d file mappings from %s", restored, self.files.directory)
            return restored
        except Exception:
            logger.exception("Rebuilding file mappings from disk failed")
            return 0

    def reconcile_from_records(
        self,
        records: Iterable[TargetRecord],
        profile_text: str,
        style: str,
    ) -> list[tuple[int, str]]:
        """
        Warm the cache from records carrying inline images.

        Keys are re-derived without a reference image (its identity is unknown for
        historical records). Returns (target_id, data_uri) for every payload that
        was repaired from disk so the caller can write it back.
        """
        repaired: list[tuple[int, str]] = []
        restored = 0
        try:
            disk_files = self.files.list_images()
        except OSError:
            logger.warning("Listing cache directory failed during reconciliation", exc_info=True)
            disk_files = []

        for record in records:
            try:
                if not record.image_url or not record.image_url.startswith("data:image"):
                    logger.debug("Skipping target %s (no inline image)", record.id)
                    continue

                key = derive_key(record.title, record.description or "", profile_text, style, None)
                payload = record.image_url

                reason = detect_corruption(payload)
                if reason:
                    logger.warning("Corrupt image for target %s: %s", record.id, reason)
                    fixed = self.repair(key, record.title)
                    if fixed is not None:
                        logger.info("Repaired image for target %s from file cache", record.id)
                        payload = fixed
                        repaired.append((record.id, fixed))
                    else:
                        logger.warning("Repair failed for target %s; keeping stored payload", record.id)

                fragment = key_fragment(key)
                match = next((f for f in reversed(disk_files) if fragment in f), None)
                self.put(key, payload, filename=match, target_id=record.id)
                restored += 1
            except Exception:
                logger.exception("Reconciling target %s failed", getattr(record, "id", "?"))

        logger.info(
            "Restored %d targets from record store (repaired=%d, memory=%d)",
            restored,
            len(repaired),
            len(self.memory),
        )
        return repaired

    def repair(self, key: str, name: str) -> str | None:
        try:
            filename = self.files.find_for_repair(key, name)
            if filename is None:
                logger.warning("No file available to repair %r", name)
                return None
            logger.info("Repairing from file %s", filename)
            return self._load_file(filename)
        except Exception:
            logger.exception("Image repair failed for %r", name)
            return None

    # ---- maintenance ----

    def clear(self) -> None:
        self.memory.clear()
        logger.info("Memory image cache cleared")

    def stats(self) -> dict[str, Any]:
        with self._lock:
            mapped_files = len(self._key_to_file)
            mapped_targets = len(self._target_to_key)
        return {
            "size": len(self.memory),
            "maxSize": self.memory.max_entries,
            "keys": self.memory.keys(),
            "mappedFiles": mapped_files,
            "mappedTargets": mapped_targets,
        }

    def log_status(self) -> None:
        try:
            files = self.files.list_images()
            logger.info(
                "Image cache: dir=%s files=%d memory=%d/%d",
                self.files.directory,
                len(files),
                len(self.memory),
                self.memory.max_entries,
            )
            for name in files[-3:]:
                logger.info("  %s (%d KB)", name, round(self.files.size_of(name) / 1024))
        except Exception:
            logger.warning("Image cache status check failed", exc_info=True)

    # ---- helpers ----

    def _resolve_file(self, key: str) -> str | None:
        fragment = key[:FRAGMENT_LENGTH]
        with self._lock:
            candidates = [self._key_to_file.get(key), self._key_to_file.get(fragment)]

        for name in candidates:
            if not name:
                continue
            if self.files.exists(name):
                return name
            logger.warning("Mapped file is missing: %s", name)
            with self._lock:
                for k in (key, fragment):
                    if self._key_to_file.get(k) == name:
                        del self._key_to_file[k]

        found = self.files.find_by_fragment(fragment)
        if found is not None:
            with self._lock:
                self._key_to_file[key] = found
            logger.debug("New file mapping %s -> %s", key[:12], found)
        return found

    def _load_file(self, filename: str) -> str:
        data = self.files.read(filename)
        mime = sniff_mime(data, default=mime_for_extension(Path(filename).suffix, "image/png"))
        return to_data_uri(data, mime)
