# src/taskpix/logging_setup.py

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import Any

_NOISY_PREFIXES = ("httpx", "httpcore", "openai", "google_genai", "PIL")
_BASE64_RUN_RE = re.compile(r"[A-Za-z0-9+/=]{100,}")
_BLOB_KEYS = {"data", "b64_json", "base64", "content", "image", "image_url", "imageUrl"}


class _ConsoleNoiseFilter(logging.Filter):
    """
    Make the interactive console usable:
    - allow taskpix logs
    - suppress SDK / HTTP client chatter unless ERROR+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name == "taskpix" or name.startswith("taskpix."):
            return True

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        if name.startswith(_NOISY_PREFIXES):
            return record.levelno >= logging.ERROR

        return record.levelno >= logging.WARNING


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskpix",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler: readable + filtered for interactive use
    - File handler: full logs for debugging

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "taskpix.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    # Request bodies carry base64 images; keep the SDKs out of the debug file too.
    for name in _NOISY_PREFIXES:
        logging.getLogger(name).setLevel(logging.WARNING)


def redact_base64(value: Any, depth: int = 0) -> Any:
    """Copy of a (possibly nested) response payload that is safe to log."""
    if depth > 8:
        return "[redacted-depth]"
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return f"[{len(value)} bytes redacted]"
    if isinstance(value, str):
        if value.startswith("data:image/"):
            return "[data:image/*;base64, ...redacted]"
        if len(value) > 2048 and _BASE64_RUN_RE.search(value):
            return "[large-base64-like-string redacted]"
        return value
    if isinstance(value, (list, tuple)):
        return [redact_base64(v, depth + 1) for v in list(value)[:50]]
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if k in _BLOB_KEYS and isinstance(v, (str, bytes, bytearray)):
                out[k] = "[redacted]"
                continue
            out[k] = redact_base64(v, depth + 1)
        return out
    return value
