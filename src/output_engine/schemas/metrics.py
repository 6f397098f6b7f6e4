"""Metric sample schemas."""

from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import Field

from .base import SchemaBase


class MetricType(str, Enum):
    COUNTER = "counter"
    TIMER = "timer"


class MetricSample(SchemaBase):
    metric_name: str
    metric_type: MetricType
    value: float
    timestamp: str
    tags: Dict[str, str] = Field(default_factory=dict)
