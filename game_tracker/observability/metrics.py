"""
Prometheus metrics for monitoring watchers and the release scheduler.

Defines and exposes metrics for:
- Source checks per watcher
- Notifications delivered or failed
- Fetch errors
- Release milestones and date backfills

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from game_tracker.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for check pass durations (in seconds)
CHECK_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """
    Prometheus metrics collector for game-tracker.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_check("twitter", "notified")
        metrics.record_notification("update", success=True)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.source_checks = Counter(
            "game_tracker_source_checks_total",
            "Total (game, source) checks performed by watchers",
            ["source_type", "outcome"],  # outcome: empty, unchanged, baseline, notified, failed
        )

        self.fetch_errors = Counter(
            "game_tracker_fetch_errors_total",
            "Total errors raised while fetching sources",
            ["source_type", "error_type"],
        )

        self.notifications = Counter(
            "game_tracker_notifications_total",
            "Total notifications handed to the sink",
            ["kind", "status"],  # status: success, error
        )

        self.check_duration = Histogram(
            "game_tracker_check_duration_seconds",
            "Duration of a full watcher pass",
            ["source_type"],
            buckets=CHECK_BUCKETS,
        )

        self.release_backfills = Counter(
            "game_tracker_release_backfills_total",
            "Release dates filled in from an authoritative lookup",
        )

        self.milestones = Counter(
            "game_tracker_release_milestones_total",
            "Release milestones processed by the scheduler",
            ["milestone", "status"],  # status: sent, skipped, error
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

    def record_check(self, source_type: str, outcome: str) -> None:
        """Record the outcome of checking one (game, source) pair."""
        self.source_checks.labels(source_type=source_type, outcome=outcome).inc()

    def record_fetch_error(self, source_type: str, error_type: str) -> None:
        self.fetch_errors.labels(source_type=source_type, error_type=error_type).inc()

    def record_notification(self, kind: str, success: bool) -> None:
        status = "success" if success else "error"
        self.notifications.labels(kind=kind, status=status).inc()

    def record_check_duration(self, source_type: str, seconds: float) -> None:
        self.check_duration.labels(source_type=source_type).observe(seconds)

    def record_backfill(self) -> None:
        self.release_backfills.inc()

    def record_milestone(self, milestone: str, status: str) -> None:
        self.milestones.labels(milestone=milestone, status=status).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
