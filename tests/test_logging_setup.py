# tests/test_logging_setup.py

from __future__ import annotations

import logging

from taskpix.logging_setup import _ConsoleNoiseFilter, redact_base64


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter() -> None:
    f = _ConsoleNoiseFilter()
    assert f.filter(_record("taskpix.cache.image_cache", logging.DEBUG))
    assert not f.filter(_record("httpx", logging.INFO))
    assert f.filter(_record("openai._base_client", logging.ERROR))
    assert not f.filter(_record("py.warnings", logging.WARNING))
    assert f.filter(_record("asyncio", logging.WARNING))


def test_redact_base64() -> None:
    payload = {
        "candidates": [{"content": {"parts": [{"inline_data": {"data": b"\x89PNG....", "mime_type": "image/png"}}]}}],
        "image_url": "data:image/png;base64,AAAA",
        "note": "data:image/jpeg;base64,BBBB",
        "blob": "A" * 5000,
        "text": "short",
    }
    out = redact_base64(payload)
    part = out["candidates"][0]["content"]["parts"][0]["inline_data"]
    assert part["data"] == "[redacted]"
    assert part["mime_type"] == "image/png"
    assert out["image_url"] == "[redacted]"
    assert out["note"] == "[data:image/*;base64, ...redacted]"
    assert out["blob"] == "[large-base64-like-string redacted]"
    assert out["text"] == "short"
