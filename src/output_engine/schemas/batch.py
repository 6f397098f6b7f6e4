"""Batch task and result models."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import ConfigDict, Field

from .base import SchemaBase
from .errors import GenerationError


class BatchTask(SchemaBase):
    """One independent generation request: a spec plus ``generate`` keyword options."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    spec: Any
    options: Dict[str, Any] = Field(default_factory=dict)


class BatchResult(SchemaBase):
    index: int
    value: Any = Field(default=None)
    error: Optional[GenerationError] = Field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None
