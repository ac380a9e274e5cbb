"""
Prometheus metrics collection.

In-memory counters for rule synchronization and message transformation;
Prometheus handles storage.
"""

import time
from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for CollectLogs.

    Pass a dedicated registry to keep instances independent (tests build
    several collectors in one process).
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or REGISTRY

        self.service_info = Info(
            "collectlogs_service",
            "CollectLogs service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": "0.1.0",
            "service": "collectlogs",
        })

        # Synchronization metrics
        self.sync_attempts_total = Counter(
            "convert_rules_sync_attempts_total",
            "Synchronizations that passed the throttle and contacted the server",
            registry=self.registry,
        )

        self.sync_failures_total = Counter(
            "convert_rules_sync_failures_total",
            "Failed synchronizations",
            ["error_type"],
            registry=self.registry,
        )

        self.sync_skipped_total = Counter(
            "convert_rules_sync_skipped_total",
            "Synchronizations skipped by the throttle",
            registry=self.registry,
        )

        self.rules_inserted_total = Counter(
            "convert_rules_inserted_total",
            "Rules inserted from the remote rule set",
            registry=self.registry,
        )

        self.rules_deleted_total = Counter(
            "convert_rules_deleted_total",
            "Stale rules deleted",
            registry=self.registry,
        )

        self.sync_duration = Histogram(
            "convert_rules_sync_duration_seconds",
            "Synchronization duration in seconds",
            buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry,
        )

        self.last_sync_timestamp = Gauge(
            "convert_rules_last_sync_timestamp_seconds",
            "Unix time of the last synchronization attempt",
            registry=self.registry,
        )

        # Transformation metrics
        self.messages_transformed_total = Counter(
            "messages_transformed_total",
            "Messages run through the convert rules",
            registry=self.registry,
        )

        self.rules_loaded = Gauge(
            "convert_rules_loaded",
            "Convert rules currently cached in memory",
            registry=self.registry,
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )

        self._start_time = time.time()

    def record_sync_skipped(self) -> None:
        self.sync_skipped_total.inc()

    def record_sync_attempt(self, timestamp: int) -> None:
        self.sync_attempts_total.inc()
        self.last_sync_timestamp.set(timestamp)

    def record_sync_result(self, inserted: int, deleted: int, duration_seconds: float) -> None:
        """Record a successful synchronization."""
        self.rules_inserted_total.inc(inserted)
        self.rules_deleted_total.inc(deleted)
        self.sync_duration.observe(duration_seconds)

    def record_sync_failure(self, error_type: str, duration_seconds: float) -> None:
        self.sync_failures_total.labels(error_type=error_type).inc()
        self.sync_duration.observe(duration_seconds)

    def record_transform(self, rules_loaded: int) -> None:
        self.messages_transformed_total.inc()
        self.rules_loaded.set(rules_loaded)

    def update_system_metrics(self) -> None:
        self.uptime_seconds.set(time.time() - self._start_time)
