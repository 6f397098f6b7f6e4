"""Pydantic value models shared across the engine."""

from .base import SchemaBase
from .batch import BatchResult, BatchTask
from .diagnostics import Diagnostics, ErrorDetail, format_value
from .errors import GenerationError, GenerationErrorCode
from .event import Event, EventType
from .metrics import MetricSample, MetricType
from .options import BatchOptions, GenerateOptions, OnTimeout

__all__ = [
    "SchemaBase",
    "BatchOptions",
    "BatchResult",
    "BatchTask",
    "Diagnostics",
    "ErrorDetail",
    "Event",
    "EventType",
    "GenerateOptions",
    "GenerationError",
    "GenerationErrorCode",
    "MetricSample",
    "MetricType",
    "OnTimeout",
    "format_value",
]
