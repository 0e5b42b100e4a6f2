"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    HTTPMetrics,
    LoadMetrics,
    setup_metrics,
    get_metrics_handler,
)

__all__ = [
    "HTTPMetrics",
    "LoadMetrics",
    "setup_metrics",
    "get_metrics_handler",
]
