# src/taskpix/store/task_image_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path

from ..core.models import ArtStyle, ImageQuality, RequesterProfile, TargetRecord

logger = logging.getLogger(__name__)


class TaskImageStore:
    """
    SQLite record store for tasks, the requester profile and app settings.

    Implements both the TargetRecordStore and SettingsStore ports.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "taskpix.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskImageStore ready db=%s total=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    image_url TEXT,
                    location TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS user_profiles (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    description TEXT NOT NULL DEFAULT '',
                    art_style TEXT NOT NULL DEFAULT 'anime',
                    reference_image_path TEXT,
                    image_quality TEXT,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            def add_col(table: str, name: str, decl: str) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("TaskImageStore migration: added column %s.%s", table, name)

            add_col("tasks", "description", "TEXT NOT NULL DEFAULT ''")
            add_col("tasks", "image_url", "TEXT")
            add_col("tasks", "location", "TEXT")
            add_col("tasks", "updated_at", "REAL NOT NULL DEFAULT 0")
            add_col("user_profiles", "art_style", "TEXT NOT NULL DEFAULT 'anime'")
            add_col("user_profiles", "reference_image_path", "TEXT")
            add_col("user_profiles", "image_quality", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_created ON tasks(created_at)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_target(row: sqlite3.Row) -> TargetRecord:
        return TargetRecord(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            description=str(row["description"] or ""),
            image_url=row["image_url"],
            location=row["location"],
        )

    # ---- tasks ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(self, title: str, description: str = "", *, location: str | None = None) -> int:
        if not title or not title.strip():
            raise ValueError("title is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(title, description, location, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (title.strip(), (description or "").strip(), location, now, now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
            logger.debug("Task added id=%s title=%r", task_id, title)
            return task_id
        finally:
            conn.close()

    def list_tasks(self, limit: int = 50) -> list[TargetRecord]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks ORDER BY created_at ASC, id ASC LIMIT ?", (int(limit),))
            return [self._row_to_target(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def get_target(self, target_id: int) -> TargetRecord | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE id = ?", (int(target_id),))
            row = cur.fetchone()
            return self._row_to_target(row) if row else None
        finally:
            conn.close()

    def list_targets_with_images(self) -> list[TargetRecord]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM tasks
                WHERE image_url IS NOT NULL AND image_url != ''
                ORDER BY id ASC
                """
            )
            return [self._row_to_target(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def list_targets_missing_images(self, limit: int = 32) -> list[TargetRecord]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM tasks
                WHERE image_url IS NULL OR image_url = ''
                ORDER BY created_at ASC, id ASC
                    LIMIT ?
                """,
                (int(limit),),
            )
            return [self._row_to_target(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def update_target_image(self, target_id: int, image_url: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE tasks SET image_url = ?, updated_at = ? WHERE id = ?",
                (image_url, time.time(), int(target_id)),
            )
            conn.commit()
            if cur.rowcount != 1:
                logger.warning("Image update touched %d rows for task %s", cur.rowcount, target_id)
        finally:
            conn.close()

    # ---- requester profile ----

    def get_profile(self) -> RequesterProfile | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM user_profiles WHERE id = 1")
            row = cur.fetchone()
            if row is None:
                return None
            return RequesterProfile(
                description=str(row["description"] or ""),
                style=ArtStyle.parse(row["art_style"]),
                reference_image_path=row["reference_image_path"],
                quality=ImageQuality.normalize(row["image_quality"]),
            )
        finally:
            conn.close()

    def set_profile(
        self,
        description: str,
        *,
        style: ArtStyle | str = ArtStyle.ANIME,
        reference_image_path: str | None = None,
        quality: ImageQuality | str | None = None,
    ) -> None:
        q = ImageQuality.normalize(quality)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO user_profiles(id, description, art_style, reference_image_path, image_quality, updated_at)
                VALUES (1, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    description = excluded.description,
                    art_style = excluded.art_style,
                    reference_image_path = excluded.reference_image_path,
                    image_quality = excluded.image_quality,
                    updated_at = excluded.updated_at
                """,
                (
                    (description or "").strip(),
                    ArtStyle.parse(str(style)).value,
                    reference_image_path,
                    q.value if q else None,
                    time.time(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- settings ----

    def get_setting(self, key: str) -> str | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cur.fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def set_setting(self, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO settings(key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def delete_setting(self, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()
