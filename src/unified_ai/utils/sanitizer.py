"""
Cleanup helpers for model output.

Models often wrap JSON in Markdown code fences or leave invisible
zero-width characters behind; these helpers strip both.

Public API:
    clean_json_output(text)   → str
    sanitize_text(text)       → str
    parse_json_output(raw)    → dict | list
"""

import json
import re
from typing import Any

from unified_ai.errors import StructuredOutputError

_OPEN_FENCE = re.compile(r"^```(json)?\n?")
_CLOSE_FENCE = re.compile(r"\n?```$")
_FENCE_OPEN_LINE = re.compile(r"^```[a-zA-Z0-9-]*\s*$", re.MULTILINE)
_FENCE_CLOSE_LINE = re.compile(r"^```\s*$", re.MULTILINE)
_ZERO_WIDTH = re.compile(r"[\u200B-\u200D\uFEFF]")


def clean_json_output(text: str) -> str:
    """Strip a surrounding ```json ... ``` wrapper so the text parses as JSON."""
    clean = text.strip()
    if clean.startswith("```"):
        clean = _CLOSE_FENCE.sub("", _OPEN_FENCE.sub("", clean, count=1), count=1)
    return clean


def sanitize_text(text: str) -> str:
    """Plain text with fence lines and zero-width characters removed."""
    if not text:
        return ""
    text = _FENCE_OPEN_LINE.sub("", text)
    text = _FENCE_CLOSE_LINE.sub("", text)
    text = _ZERO_WIDTH.sub("", text)
    return text.strip()


def parse_json_output(raw: Any) -> Any:
    """Return raw unchanged when already structured, else parse it as JSON.

    Raises:
        StructuredOutputError: if the text is not valid JSON.
    """
    if isinstance(raw, (dict, list)):
        return raw
    if raw is None:
        raise StructuredOutputError("Model returned no structured output", raw=raw)
    text = clean_json_output(str(raw))
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(
            f"Model returned malformed JSON: {exc.msg} at position {exc.pos}", raw=raw
        ) from exc
