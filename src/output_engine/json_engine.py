"""Decoding of raw backend text into JSON values."""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Tuple

from output_engine.schemas import Diagnostics

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*\n?([\s\S]*?)\n?\s*```$")


def strip_markdown_fences(raw: str) -> str:
    """Remove a ```json ... ``` wrapper if the whole output is fenced."""
    trimmed = raw.strip()
    match = _FENCE_RE.match(trimmed)
    return match.group(1).strip() if match else trimmed


def decode_output(raw: Any) -> Tuple[Any | None, Optional[Diagnostics]]:
    """Parse backend output.

    Returns (value, None) on success, (None, Diagnostics) when no JSON value
    can be recovered. Oversized integer literals and nesting beyond the
    interpreter stack count as undecodable. Already-decoded values pass
    through untouched.
    """
    if not isinstance(raw, str):
        return raw, None

    text = strip_markdown_fences(raw)
    try:
        return json.loads(text), None
    except (ValueError, RecursionError):
        # Attempt to extract between first { and last }
        start = text.find("{")
        end = text.rfind("}")
        if start != -1 and end > start:
            try:
                return json.loads(text[start : end + 1]), None
            except (ValueError, RecursionError):
                return None, Diagnostics.new("valid JSON", raw)
    return None, Diagnostics.new("valid JSON", raw)
