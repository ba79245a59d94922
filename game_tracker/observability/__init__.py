"""Observability layer - logging and metrics."""

from game_tracker.observability.logging import setup_logging
from game_tracker.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
