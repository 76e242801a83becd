# src/taskpix/core/errors.py

"""
Closed error taxonomy for image generation.

Every failure that leaves the generation layer is a GenerationError value with a
fixed retryability and a user-facing message, so UI layers never map errors to
text themselves.

Classification of raw exceptions is keyword based and best-effort: the rules are
an ordered list of (pattern, kind) pairs matched against
"<ExceptionClass>: <message>" in lower case. First match wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class GenerationErrorKind(StrEnum):
    API_KEY_MISSING = "API_KEY_MISSING"
    API_KEY_INVALID = "API_KEY_INVALID"
    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    CONTENT_VIOLATION = "CONTENT_VIOLATION"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INVALID_PROMPT = "INVALID_PROMPT"
    FILE_SAVE_ERROR = "FILE_SAVE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True, slots=True)
class _ErrorProfile:
    user_message: str
    retryable: bool


_PROFILES: dict[GenerationErrorKind, _ErrorProfile] = {
    GenerationErrorKind.API_KEY_MISSING: _ErrorProfile(
        "An API key is required for AI image generation. Add one in Settings.", False
    ),
    GenerationErrorKind.API_KEY_INVALID: _ErrorProfile(
        "The API key is invalid. Enter a valid API key in Settings.", False
    ),
    GenerationErrorKind.NETWORK_ERROR: _ErrorProfile(
        "There is a problem with the network connection. Check your internet connection.", True
    ),
    GenerationErrorKind.RATE_LIMIT: _ErrorProfile(
        "The API rate limit was reached. Wait a moment and try again.", True
    ),
    GenerationErrorKind.CONTENT_VIOLATION: _ErrorProfile(
        "The task may violate the content policy. Please change its wording.", False
    ),
    GenerationErrorKind.QUOTA_EXCEEDED: _ErrorProfile(
        "The API usage quota is exhausted. Upgrade your plan or try again tomorrow.", False
    ),
    GenerationErrorKind.SERVICE_UNAVAILABLE: _ErrorProfile(
        "The image generation service is temporarily unavailable. Try again later.", True
    ),
    GenerationErrorKind.INVALID_PROMPT: _ErrorProfile(
        "There is a problem with the task text. Please review the task description.", False
    ),
    GenerationErrorKind.FILE_SAVE_ERROR: _ErrorProfile(
        "Saving the image failed. Check the available storage space.", True
    ),
    GenerationErrorKind.UNKNOWN_ERROR: _ErrorProfile(
        "An unexpected error occurred during image generation. Please try again.", True
    ),
}


@dataclass(frozen=True, slots=True)
class GenerationError:
    kind: GenerationErrorKind
    message: str
    user_message: str
    retryable: bool
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "message": self.message,
            "userMessage": self.user_message,
            "retryable": self.retryable,
            "details": dict(self.details),
        }


def make_error(
    kind: GenerationErrorKind,
    message: str,
    details: dict[str, Any] | None = None,
) -> GenerationError:
    profile = _PROFILES[kind]
    return GenerationError(
        kind=kind,
        message=message,
        user_message=profile.user_message,
        retryable=profile.retryable,
        details=dict(details or {}),
    )


def is_retryable(kind: GenerationErrorKind) -> bool:
    return _PROFILES[kind].retryable


CLASSIFICATION_RULES: list[tuple[re.Pattern[str], GenerationErrorKind]] = [
    (re.compile(r"api[ _]?key|authentication|unauthori[sz]ed|permissiondenied|\b401\b"),
     GenerationErrorKind.API_KEY_INVALID),
    (re.compile(r"quota|billing"), GenerationErrorKind.QUOTA_EXCEEDED),
    (re.compile(r"\brate\b|rate[ _-]?limit|throttl|too many requests|\b429\b"),
     GenerationErrorKind.RATE_LIMIT),
    (re.compile(r"invalid[ _]prompt|prompt is too long"), GenerationErrorKind.INVALID_PROMPT),
    (re.compile(r"content|policy|violation|safety"), GenerationErrorKind.CONTENT_VIOLATION),
    (re.compile(r"network|connection|timeout|timed out"), GenerationErrorKind.NETWORK_ERROR),
    (re.compile(r"service|unavailable|\b503\b|overloaded"), GenerationErrorKind.SERVICE_UNAVAILABLE),
    (re.compile(r"save|write|enospc|no space left"), GenerationErrorKind.FILE_SAVE_ERROR),
]


def classify_exception(exc: BaseException, context: str = "") -> GenerationError:
    """Map any raw backend/infrastructure exception onto the closed taxonomy."""
    message = str(exc).strip() or exc.__class__.__name__
    haystack = f"{exc.__class__.__name__}: {message}".lower()

    kind = GenerationErrorKind.UNKNOWN_ERROR
    for pattern, rule_kind in CLASSIFICATION_RULES:
        if pattern.search(haystack):
            kind = rule_kind
            break

    details: dict[str, Any] = {"exception": exc.__class__.__name__}
    if context:
        details["context"] = context
    return make_error(kind, message, details)
