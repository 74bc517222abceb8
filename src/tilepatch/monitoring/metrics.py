"""
Metrics Collection

Prometheus metrics for tile transformation runs: tile outcomes, per-stage
durations and queue depth. Metrics live in a private registry so that
several runs (or tests) in one process never collide, and can optionally
be pushed to a Prometheus pushgateway when a run finishes.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, push_to_gateway


@dataclass
class MetricValue:
    """Represents a single metric value with metadata."""
    name: str
    value: Union[int, float]
    timestamp: datetime
    labels: Dict[str, str] = field(default_factory=dict)


class MetricsCollector:
    """
    Metrics collector for the tile transformation pipeline.

    Counters and histograms are mirrored into an in-memory summary so the
    pipeline can report totals without scraping Prometheus.
    """

    TILES_TOTAL = "tilepatch_tiles_total"
    STAGE_DURATION = "tilepatch_tile_duration_seconds"
    TILES_PENDING = "tilepatch_tiles_pending"

    def __init__(self, pushgateway: Optional[str] = None):
        """
        Initialize the metrics collector.

        Args:
            pushgateway: Optional Prometheus pushgateway address
        """
        self.pushgateway = pushgateway
        self.logger = structlog.get_logger(collector_type="MetricsCollector")

        self.lock = threading.RLock()
        self.registry = CollectorRegistry()
        self.counters = {
            self.TILES_TOTAL: Counter(
                self.TILES_TOTAL,
                "Tiles visited by outcome",
                ["status"],
                registry=self.registry
            ),
        }
        self.histograms = {
            self.STAGE_DURATION: Histogram(
                self.STAGE_DURATION,
                "Duration of tile pipeline stages",
                ["stage"],
                registry=self.registry
            ),
        }
        self.gauges = {
            self.TILES_PENDING: Gauge(
                self.TILES_PENDING,
                "Tiles not yet processed in the current run",
                registry=self.registry
            ),
        }

        self.values: List[MetricValue] = []
        self.totals: Dict[str, float] = defaultdict(float)

    def _record(self, name: str, value: Union[int, float], labels: Dict[str, str]) -> None:
        self.values.append(MetricValue(
            name=name,
            value=value,
            timestamp=datetime.now(timezone.utc),
            labels=labels
        ))
        key = name
        if labels:
            key += "{" + ",".join(f"{k}={v}" for k, v in sorted(labels.items())) + "}"
        self.totals[key] += value

    def increment_counter(
        self,
        name: str,
        value: Union[int, float] = 1,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        labels = labels or {}
        with self.lock:
            self._record(name, value, labels)
            if name in self.counters:
                metric = self.counters[name]
                (metric.labels(**labels) if labels else metric).inc(value)

    def record_histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        labels = labels or {}
        with self.lock:
            self._record(name, value, labels)
            if name in self.histograms:
                metric = self.histograms[name]
                (metric.labels(**labels) if labels else metric).observe(value)

    def set_gauge(self, name: str, value: Union[int, float]) -> None:
        with self.lock:
            if name in self.gauges:
                self.gauges[name].set(value)

    def tile_outcome(self, status: str) -> None:
        """Count one visited tile (written, unchanged, missing, failed)."""
        self.increment_counter(self.TILES_TOTAL, labels={"status": status})

    @contextmanager
    def time_stage(self, stage: str):
        """Record the duration of a pipeline stage, including failed attempts."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_histogram(
                self.STAGE_DURATION,
                time.perf_counter() - start,
                labels={"stage": stage}
            )

    def count(self, status: str) -> int:
        return int(self.totals.get(f"{self.TILES_TOTAL}{{status={status}}}", 0))

    def get_summary(self) -> Dict[str, int]:
        """Tile totals by outcome."""
        return {
            status: self.count(status)
            for status in ("written", "unchanged", "missing", "failed")
        }

    def push_to_prometheus_gateway(self, job_name: str = "tilepatch") -> bool:
        """Push the registry to the configured pushgateway, if any."""
        if not self.pushgateway:
            return False
        try:
            push_to_gateway(self.pushgateway, job=job_name, registry=self.registry)
            self.logger.info("Metrics pushed to gateway", gateway=self.pushgateway)
            return True
        except Exception as e:
            self.logger.error(
                "Failed to push metrics to gateway",
                gateway=self.pushgateway,
                error=str(e)
            )
            return False
