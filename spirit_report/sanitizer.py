"""Strip markdown artifacts from generated narrative before layout."""

from __future__ import annotations

import re
from typing import Any

_FENCE_OPEN_RE = re.compile(r"^```[a-z0-9_+-]*[ \t]*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?```$")
_STRONG_STAR_RE = re.compile(r"\*\*")
_STRONG_UNDERSCORE_RE = re.compile(r"(?<![\w_])__(?=\S)(.+?)(?<=\S)__(?![\w_])")
# Single-marker emphasis only when it hugs a word, so "* item" bullets survive.
_EMPHASIS_STAR_RE = re.compile(r"(?<![\w*])\*(?=\S)([^*\n]+?)(?<=\S)\*(?![\w*])")
_EMPHASIS_UNDERSCORE_RE = re.compile(r"(?<![\w_])_(?=\S)([^_\n]+?)(?<=\S)_(?![\w_])")
_HEADING_RE = re.compile(r"^[ \t]{0,3}#{1,6}[ \t]+", re.MULTILINE)


def sanitize_narrative(text: Any) -> str:
    if text is None:
        return ""
    cleaned = str(text).strip()
    cleaned = _FENCE_OPEN_RE.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned, count=1)
    cleaned = _STRONG_STAR_RE.sub("", cleaned)
    cleaned = _STRONG_UNDERSCORE_RE.sub(r"\1", cleaned)
    cleaned = _EMPHASIS_STAR_RE.sub(r"\1", cleaned)
    cleaned = _EMPHASIS_UNDERSCORE_RE.sub(r"\1", cleaned)
    cleaned = _HEADING_RE.sub("", cleaned)
    return cleaned.strip()
