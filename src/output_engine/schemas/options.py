"""Option models for single and batch generation."""

from __future__ import annotations

import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ConfigDict, Field, field_validator

from .base import SchemaBase


def default_concurrency() -> int:
    return os.cpu_count() or 1


class OnTimeout(str, Enum):
    CANCEL = "cancel"
    DETACH = "detach"


class GenerateOptions(SchemaBase):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    backend: Any
    backend_opts: Dict[str, Any] = Field(default_factory=dict)
    max_retries: int = Field(default=3, ge=0, strict=True)
    telemetry_metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("backend")
    @classmethod
    def _backend_is_callable(cls, value: Any) -> Any:
        if not callable(getattr(value, "call", None)):
            raise ValueError("backend must provide a call(messages, options) method")
        return value


class BatchOptions(SchemaBase):
    model_config = ConfigDict(extra="forbid")

    max_concurrency: int = Field(default_factory=default_concurrency, gt=0, strict=True)
    timeout: Optional[float] = Field(default=None, gt=0)
    on_timeout: OnTimeout = Field(default=OnTimeout.CANCEL)
    ordered: bool = Field(default=True)
    telemetry_metadata: Dict[str, Any] = Field(default_factory=dict)
