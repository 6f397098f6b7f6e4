"""Metrics collector for recording generation timings and counts."""

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from output_engine.schemas import MetricSample, MetricType


class MetricsCollector:
    """Collects metric samples. Safe to share between batch worker threads."""

    def __init__(self, enabled_metrics: Optional[Iterable[str]] = None):
        """Initialize metrics collector.

        Args:
            enabled_metrics: Names to record; None records every metric
        """
        self.enabled_metrics = set(enabled_metrics) if enabled_metrics is not None else None
        self.samples: List[MetricSample] = []
        self._lock = threading.Lock()

    def is_enabled(self, metric_name: str) -> bool:
        """Check if a metric is enabled for collection."""
        return self.enabled_metrics is None or metric_name in self.enabled_metrics

    def _record(self, metric_name: str, metric_type: MetricType, value: float, tags: Optional[Dict[str, str]]) -> None:
        if not self.is_enabled(metric_name):
            return
        sample = MetricSample(
            metric_name=metric_name,
            metric_type=metric_type,
            value=value,
            timestamp=datetime.now(ZoneInfo("UTC")).isoformat(),
            tags=tags or {},
        )
        with self._lock:
            self.samples.append(sample)

    def record_timer(self, metric_name: str, duration_ms: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a timer metric (duration in milliseconds)."""
        self._record(metric_name, MetricType.TIMER, duration_ms, tags)

    def record_counter(self, metric_name: str, count: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a counter metric."""
        self._record(metric_name, MetricType.COUNTER, float(count), tags)

    def get_samples(
        self,
        metric_name: Optional[str] = None,
        metric_type: Optional[MetricType] = None,
    ) -> List[MetricSample]:
        """Get recorded samples, optionally filtered by name and type."""
        with self._lock:
            samples = list(self.samples)
        if metric_name:
            samples = [s for s in samples if s.metric_name == metric_name]
        if metric_type:
            samples = [s for s in samples if s.metric_type == metric_type]
        return samples

    def clear(self) -> None:
        """Clear all recorded samples."""
        with self._lock:
            self.samples.clear()
