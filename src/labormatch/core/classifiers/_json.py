"""Best-effort JSON object parsing for generated text."""

from __future__ import annotations

import json
import math
import re
from typing import Any

from .requirements import MAX_EXPERIENCE_YEARS

_FENCE_START = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```\s*$")


def strip_code_fences(text: str) -> str:
    return _FENCE_END.sub("", _FENCE_START.sub("", text.strip())).strip()


def extract_first_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def coerce_json(text: str) -> dict[str, Any]:
    """Parse a JSON object from model output (code fences and commentary tolerated).

    Raises ``json.JSONDecodeError`` or ``ValueError`` when no object can be parsed.
    """
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        candidate = extract_first_json_object(cleaned)
        if candidate is None:
            raise
        parsed = json.loads(candidate)
    if not isinstance(parsed, dict):
        raise ValueError("Expected a JSON object")
    return parsed


def coerce_years(value: Any) -> int:
    """Model-reported years clamped to ``[0, MAX_EXPERIENCE_YEARS]``; non-numeric or non-finite values read as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    return min(max(int(value), 0), MAX_EXPERIENCE_YEARS)
