# src/taskpix/core/keys.py

from __future__ import annotations

import hashlib
from pathlib import PurePath

KEY_LENGTH = 32
FRAGMENT_LENGTH = 8
NO_REFERENCE = "no_ref"


def derive_key(
    title: str,
    description: str,
    profile_text: str,
    style: str,
    reference_image_path: str | None = None,
) -> str:
    """
    Stable cache key for a request's semantic fields.

    The reference image is identified by basename only, so two different files
    sharing a name share a key.
    """
    ref = PurePath(reference_image_path).name if reference_image_path else NO_REFERENCE
    content = "|".join([title or "", description or "", profile_text or "", str(style or ""), ref])
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:KEY_LENGTH]


def key_fragment(key: str) -> str:
    return key[:FRAGMENT_LENGTH]
