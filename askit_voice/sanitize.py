"""Text sanitization for transcripts, analysis fields and synthesis input."""

from __future__ import annotations

import re

MAX_TEXT_LENGTH = 1000

MARKUP_CHARS = re.compile(r"[<>]")
SCRIPT_URI = re.compile(r"javascript:", re.I)
EVENT_HANDLER = re.compile(r"on\w+=", re.I)

_PATTERNS = (MARKUP_CHARS, SCRIPT_URI, EVENT_HANDLER)


def _strip_patterns(text: str) -> str:
    # Removing one match can join two halves into a new one ("javajavascript:script:").
    while True:
        cleaned = text
        for pattern in _PATTERNS:
            cleaned = pattern.sub("", cleaned)
        if cleaned == text:
            return cleaned
        text = cleaned


def sanitize_input(text: str | None, max_length: int | None = MAX_TEXT_LENGTH) -> str:
    """Strip markup characters, script URIs and inline event handlers; trim and cap length.

    Multilingual content passes through untouched. The result is a fixed point:
    sanitize_input(sanitize_input(x)) == sanitize_input(x).
    """
    cleaned = _strip_patterns(text or "").strip()
    if max_length is not None and len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip()
    return cleaned


__all__ = ["MAX_TEXT_LENGTH", "sanitize_input"]
