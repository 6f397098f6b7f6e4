"""Generation error values."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field

from .base import SchemaBase
from .diagnostics import Diagnostics


class GenerationErrorCode(str, Enum):
    CONFIGURATION = "configuration"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    BACKEND = "backend_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    TASK_FAILED = "task_failed"


class GenerationError(SchemaBase):
    """Terminal failure of a generation call.

    Callers branch on ``code``. ``reason`` narrows it (``no_backend``,
    ``rate_limited``...). ``last_diagnostics`` is kept for logging only.
    """

    code: GenerationErrorCode
    reason: str
    message: str
    attempts: int = Field(default=0)
    details: Dict[str, Any] = Field(default_factory=dict)
    last_diagnostics: Optional[Diagnostics] = Field(default=None)
