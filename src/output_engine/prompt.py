"""Default prompt construction for generation and repair turns.

Messages are plain ``{"role", "content"}`` dicts. Content is trimmed and
never wrapped in code fences.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from output_engine.schemas import Diagnostics, ErrorDetail

SYSTEM_PROMPT = "\n".join(
    [
        "You are a structured data generator. Your output must be valid JSON that conforms to the provided schema.",
        "",
        "Rules:",
        "- Output ONLY valid JSON, with no additional text before or after it",
        "- Follow all field constraints in the schema",
        "- Include all required fields",
        "- Use correct types for every field",
    ]
)


def _message(role: str, content: str) -> Dict[str, str]:
    return {"role": role, "content": content.strip()}


def _render_got(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=repr)


def _render_error(error: ErrorDetail) -> str:
    if error.field is None:
        lines = [f"- Expected {error.expected}"]
    else:
        lines = [f"- Field: {error.field}", f"  Expected: {error.expected}"]
    lines.append(f"  Got: {_render_got(error.got)}")
    lines.append(f"  Issue: {error.message}")
    return "\n".join(lines)


def build_initial(spec: Any) -> List[Dict[str, str]]:
    """System and user messages asking for output matching ``spec``."""
    schema = json.dumps(spec.to_schema(), indent=2, sort_keys=True, ensure_ascii=False)
    user = (
        "Generate JSON output that conforms to the following JSON schema:\n\n"
        f"{schema}\n\n"
        "Respond with valid JSON only."
    )
    return [_message("system", SYSTEM_PROMPT), _message("user", user)]


def build_repair(previous_output: str, diagnostics: Diagnostics) -> List[Dict[str, str]]:
    """Assistant turn replaying the rejected output, then a user turn listing every error."""
    errors = "\n".join(_render_error(error) for error in diagnostics.errors)
    lines = ["Your previous output had validation errors:", ""]
    if errors:
        lines.extend([errors, ""])
    lines.extend(
        [
            "Repair instructions:",
            diagnostics.repair_instructions,
            "",
            "Please provide corrected JSON that addresses all errors. Respond with valid JSON only.",
        ]
    )
    previous = previous_output if isinstance(previous_output, str) else _render_got(previous_output)
    return [
        {"role": "assistant", "content": previous},
        _message("user", "\n".join(lines)),
    ]
