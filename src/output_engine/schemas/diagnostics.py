"""Validation diagnostics and repair instructions.

A ``Diagnostics`` value is what a failed validation returns: the ordered
error records plus repair instructions derived from them. Both are frozen;
``add_error`` and ``merge`` build new instances.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import Field, model_validator

from .base import SchemaBase

GENERIC_REPAIR_INSTRUCTION = "Output must be valid JSON matching the expected schema."


def format_value(value: Any) -> str:
    """Render a value the way it appears in diagnostic messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return f"list with {len(value)} items"
    if isinstance(value, Mapping):
        return f"map with {len(value)} keys"
    return repr(value)


class ErrorDetail(SchemaBase):
    """A single validation failure.

    ``field`` is None for whole-value errors, otherwise a dotted or indexed
    path such as ``address.zip`` or ``tags[2]``.
    """

    field: Optional[str] = Field(default=None)
    expected: str
    got: Any = Field(default=None)
    message: str

    @classmethod
    def build(cls, expected: str, got: Any, field: Optional[str] = None, message: Optional[str] = None) -> "ErrorDetail":
        if message is None:
            prefix = f"Field '{field}': " if field is not None else ""
            message = f"{prefix}Expected {expected} but got {format_value(got)}"
        return cls(field=field, expected=expected, got=got, message=message)

    def instruction(self) -> str:
        if self.field is None:
            return f"Output must be: {self.expected}"
        return f"Field '{self.field}' must be: {self.expected}"


ErrorLike = Union[ErrorDetail, Mapping[str, Any]]


def _coerce_error(error: ErrorLike) -> ErrorDetail:
    if isinstance(error, ErrorDetail):
        return error
    if isinstance(error, Mapping):
        field = error.get("field")
        return ErrorDetail.build(
            expected=str(error.get("expected", "valid value")),
            got=error.get("got"),
            field=str(field) if field is not None else None,
            message=error.get("message"),
        )
    raise TypeError(f"Cannot build an ErrorDetail from {type(error).__name__}")


def build_repair_instructions(errors: Iterable[ErrorDetail]) -> str:
    lines = [error.instruction() for error in errors]
    if not lines:
        return GENERIC_REPAIR_INSTRUCTION
    return "\n".join(lines)


class Diagnostics(SchemaBase):
    """Ordered validation errors with their derived repair instructions."""

    errors: Tuple[ErrorDetail, ...] = Field(default_factory=tuple)
    repair_instructions: str = Field(default="")

    @model_validator(mode="after")
    def _derive_instructions(self) -> "Diagnostics":
        # Instructions are always a function of errors, whatever the caller passed.
        object.__setattr__(self, "repair_instructions", build_repair_instructions(self.errors))
        return self

    @classmethod
    def new(cls, expected: str, got: Any, field: Optional[str] = None) -> "Diagnostics":
        """Diagnostics holding a single error."""
        return cls(errors=(ErrorDetail.build(expected, got, field=field),))

    @classmethod
    def from_errors(cls, errors: Iterable[ErrorLike]) -> "Diagnostics":
        """Normalize error-like records (ErrorDetail or mappings) into Diagnostics."""
        return cls(errors=tuple(_coerce_error(error) for error in errors))

    @classmethod
    def merge(cls, diagnostics: Iterable["Diagnostics"]) -> "Diagnostics":
        """Concatenate errors from several diagnostics, dropping structural duplicates."""
        merged: List[ErrorDetail] = []
        for item in diagnostics:
            for error in item.errors:
                if error not in merged:
                    merged.append(error)
        return cls(errors=tuple(merged))

    def add_error(self, field: Optional[str], expected: str, got: Any, message: Optional[str] = None) -> "Diagnostics":
        error = ErrorDetail.build(expected, got, field=field, message=message)
        return Diagnostics(errors=self.errors + (error,))

    def has_errors(self) -> bool:
        return bool(self.errors)

    def error_count(self) -> int:
        return len(self.errors)

    def format(self) -> str:
        """Human summary for logs, one line per error."""
        count = len(self.errors)
        noun = "error" if count == 1 else "errors"
        lines = [f"{count} {noun}:"]
        for error in self.errors:
            if error.field is None:
                lines.append(f"- {error.message}")
            else:
                lines.append(f"- [{error.field}] {error.message}")
        return "\n".join(lines)
