# src/taskpix/cache/integrity.py

from __future__ import annotations

import base64
import binascii
import re

_DATA_URI_RE = re.compile(r"^data:([^;,]+);base64,")

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
PNG_END_CHUNK = b"IEND"

_EXTENSION_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}
_MIME_EXTENSION = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}


def sniff_mime(data: bytes, default: str = "image/png") -> str:
    if data.startswith(PNG_SIGNATURE):
        return "image/png"
    if data[:2] == b"\xff\xd8":
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return default


def mime_for_extension(ext: str, default: str = "application/octet-stream") -> str:
    return _EXTENSION_MIME.get(ext.lower(), default)


def extension_for_mime(mime_type: str) -> str:
    return _MIME_EXTENSION.get(mime_type, ".png")


def to_data_uri(data: bytes, mime_type: str | None = None) -> str:
    mime = mime_type or sniff_mime(data)
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(data_uri: str) -> tuple[str, bytes] | None:
    m = _DATA_URI_RE.match(data_uri or "")
    if not m:
        return None
    try:
        raw = base64.b64decode(data_uri[m.end():], validate=True)
    except (ValueError, binascii.Error):
        return None
    return m.group(1), raw


def detect_corruption(data_uri: str | None) -> str | None:
    """
    Inspect an inline image payload.

    Returns None for a sound payload, otherwise a short reason. A PNG must end
    with its IEND chunk (4-byte type + 4-byte CRC), anything shorter is truncated.
    """
    if not data_uri or not data_uri.startswith("data:image/"):
        return "not a data:image URI"

    m = _DATA_URI_RE.match(data_uri)
    if not m:
        return "invalid base64 header"

    try:
        raw = base64.b64decode(data_uri[m.end():], validate=True)
    except (ValueError, binascii.Error) as exc:
        return f"undecodable base64 payload ({exc})"

    if m.group(1) == "image/png" and PNG_END_CHUNK not in raw[-12:]:
        return "PNG end chunk missing"

    return None
