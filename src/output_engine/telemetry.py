"""Telemetry/event bus.

A bus is passed into ``generate``/``generate_batch`` explicitly; there is no
process-wide instance. Handlers observe events and can never change the
outcome of a generation.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from output_engine.schemas import Event, EventType, MetricSample

if TYPE_CHECKING:
    from output_engine.runtime.metrics_collector import MetricsCollector

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], None]


def _now_iso() -> str:
    """Generate ISO-8601 timestamp."""
    return datetime.now(ZoneInfo("UTC")).isoformat()


def _tags(metadata: Dict[str, Any]) -> Dict[str, str]:
    return {key: str(metadata[key]) for key in ("status", "backend") if key in metadata}


@dataclass
class TelemetryBus:
    events: List[Event] = field(default_factory=list)
    handlers: List[EventHandler] = field(default_factory=list)
    metrics_collector: Optional[MetricsCollector] = field(default=None)

    def __post_init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count()

    def attach(self, handler: EventHandler) -> None:
        """Register a callable invoked with every emitted event."""
        with self._lock:
            self.handlers.append(handler)

    def emit(self, event: Event) -> None:
        """Record event and dispatch it to handlers.

        Handler exceptions are logged and never propagate.
        """
        with self._lock:
            self.events.append(event)
            handlers = list(self.handlers)

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in telemetry handler %r for %s: %s", handler, event.name, e, exc_info=True)

    def _emit(self, type: EventType, name: str, measurements: Dict[str, Any], metadata: Dict[str, Any]) -> None:
        with self._lock:
            event_id = f"{name}-{next(self._ids)}"
        self.emit(Event(
            event_id=event_id,
            type=type,
            name=name,
            timestamp=_now_iso(),
            measurements=measurements,
            metadata=dict(metadata),
        ))

    # Generation Events
    def generation_started(self, metadata: Dict[str, Any]) -> None:
        self._emit(EventType.GENERATE, "generate.start", {}, metadata)

    def attempt_started(self, attempt: int, metadata: Dict[str, Any]) -> None:
        """Emit attempt started event (attempt is 0-based)."""
        self._emit(EventType.ATTEMPT, "generate.attempt", {"attempt": attempt}, metadata)
        if self.metrics_collector:
            self.metrics_collector.record_counter("generation_attempts", tags=_tags(metadata))

    def generation_stopped(self, duration_ms: float, attempt_count: int, metadata: Dict[str, Any]) -> None:
        """Emit generation stop event with duration and attempt count."""
        self._emit(
            EventType.GENERATE,
            "generate.stop",
            {"duration": duration_ms, "attempt_count": attempt_count},
            metadata,
        )
        if self.metrics_collector:
            self.metrics_collector.record_timer("generation_duration", duration_ms, tags=_tags(metadata))

    def generation_exception(self, duration_ms: float, attempt_count: int, error: BaseException, metadata: Dict[str, Any]) -> None:
        """Emit event for an unexpected exception escaping the generation loop."""
        self._emit(
            EventType.GENERATE,
            "generate.exception",
            {"duration": duration_ms, "attempt_count": attempt_count},
            {**metadata, "status": "exception", "kind": type(error).__name__, "error": str(error)},
        )

    # Batch Events
    def batch_started(self, total_tasks: int, metadata: Dict[str, Any]) -> None:
        self._emit(EventType.BATCH, "batch.start", {"total_tasks": total_tasks}, metadata)

    def batch_stopped(
        self,
        total_tasks: int,
        success_count: int,
        error_count: int,
        duration_ms: float,
        metadata: Dict[str, Any],
    ) -> None:
        self._emit(
            EventType.BATCH,
            "batch.stop",
            {
                "total_tasks": total_tasks,
                "success_count": success_count,
                "error_count": error_count,
                "duration": duration_ms,
            },
            metadata,
        )
        if self.metrics_collector:
            self.metrics_collector.record_timer("batch_duration", duration_ms)

    def events_named(self, name: str) -> List[Event]:
        with self._lock:
            return [event for event in self.events if event.name == name]

    def get_metrics(self) -> List[MetricSample]:
        """Get all collected metric samples."""
        if self.metrics_collector:
            return self.metrics_collector.get_samples()
        return []
