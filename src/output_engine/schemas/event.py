"""Event schemas."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field

from .base import SchemaBase


class EventType(str, Enum):
    GENERATE = "generate"
    ATTEMPT = "attempt"
    BATCH = "batch"


class Event(SchemaBase):
    event_id: str
    type: EventType
    name: str
    timestamp: Optional[str] = Field(default=None)
    measurements: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
