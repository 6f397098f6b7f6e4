"""Spec capability interface and the Schema implementation.

Anything with ``to_schema()`` and ``validate(value)`` is a Spec; the
generator only talks to specs through these two calls.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from output_engine.schemas.diagnostics import Diagnostics
from output_engine.spec.field import FieldSpec, FieldType, StringFormat
from output_engine.spec.schema import Schema


@runtime_checkable
class Spec(Protocol):
    def to_schema(self) -> Dict[str, Any]:
        ...

    def validate(self, value: Any) -> Tuple[Any, Optional[Diagnostics]]:
        ...


def _require_spec(spec: Any) -> Spec:
    if not isinstance(spec, Spec):
        raise TypeError(f"{type(spec).__name__} does not implement to_schema/validate")
    return spec


def to_schema(spec: Any) -> Dict[str, Any]:
    """Structural description of ``spec`` for prompt construction."""
    return _require_spec(spec).to_schema()


def validate(spec: Any, value: Any) -> Tuple[Any, Optional[Diagnostics]]:
    """Validate ``value`` against ``spec``; returns ``(value, None)`` or ``(None, diagnostics)``."""
    return _require_spec(spec).validate(value)


__all__ = [
    "FieldSpec",
    "FieldType",
    "Schema",
    "Spec",
    "StringFormat",
    "to_schema",
    "validate",
]
