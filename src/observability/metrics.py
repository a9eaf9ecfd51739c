"""
Prometheus metrics for monitoring the alert sync engine.

Defines and exposes metrics for:
- Binding sync outcomes per mode
- Pages fetched and mentions ingested
- Remote API request outcomes
- Binding and connector-run latency
- Binding state transitions

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0)


class MetricsCollector:
    """
    Prometheus metrics collector for listening-sync.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_binding_synced("historical", "completed", latency=1.2)
        metrics.record_mentions(persisted=40, skipped=2)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Sync counters
        self.bindings_synced = Counter(
            "listening_sync_bindings_synced_total",
            "Total binding sync passes",
            ["mode", "outcome"],  # outcome: completed, progress, failed, skipped
        )

        self.pages_fetched = Counter(
            "listening_sync_pages_fetched_total",
            "Total mention pages fetched from the provider",
            ["mode"],
        )

        self.mentions_ingested = Counter(
            "listening_sync_mentions_ingested_total",
            "Total mentions handed to the ingestor",
            ["status"],  # persisted, skipped
        )

        self.remote_requests = Counter(
            "listening_sync_remote_requests_total",
            "Total provider API requests",
            ["endpoint", "outcome"],  # outcome: success, error
        )

        self.binding_transitions = Counter(
            "listening_sync_binding_transitions_total",
            "Total audited binding mutations",
            ["action"],
        )

        # Latency histograms
        self.binding_sync_latency = Histogram(
            "listening_sync_binding_sync_latency_seconds",
            "Time to run one binding sync pass",
            ["mode"],
            buckets=LATENCY_BUCKETS,
        )

        self.connector_run_latency = Histogram(
            "listening_sync_connector_run_latency_seconds",
            "Time to run one connector sync invocation",
            ["status"],
            buckets=LATENCY_BUCKETS,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_binding_synced(
        self,
        mode: str,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        """
        Record the outcome of one binding sync pass.

        Args:
            mode: historical or incremental
            outcome: completed, progress, failed or skipped
            latency: Optional pass latency in seconds
        """
        self.bindings_synced.labels(mode=mode, outcome=outcome).inc()
        if latency is not None:
            self.binding_sync_latency.labels(mode=mode).observe(latency)

    def record_pages(self, mode: str, count: int = 1) -> None:
        if count > 0:
            self.pages_fetched.labels(mode=mode).inc(count)

    def record_mentions(self, persisted: int, skipped: int) -> None:
        """
        Record ingestion counts for a page.

        Args:
            persisted: Newly stored mentions
            skipped: Duplicates or unusable mentions
        """
        if persisted > 0:
            self.mentions_ingested.labels(status="persisted").inc(persisted)
        if skipped > 0:
            self.mentions_ingested.labels(status="skipped").inc(skipped)

    def record_remote_request(self, endpoint: str, success: bool) -> None:
        self.remote_requests.labels(
            endpoint=endpoint,
            outcome="success" if success else "error",
        ).inc()

    def record_binding_transition(self, action: str) -> None:
        self.binding_transitions.labels(action=action).inc()

    def record_connector_run(self, status: str, latency: float) -> None:
        """
        Record a finished connector invocation.

        Args:
            status: completed or failed
            latency: Invocation latency in seconds
        """
        self.connector_run_latency.labels(status=status).observe(latency)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
