"""Prometheus metrics definitions and helpers.

Provides the metric definitions shared by the HTTP layer and the load
endpoint.
"""

from functools import lru_cache
from typing import Callable

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY,
    CollectorRegistry,
)


class HTTPMetrics:
    """HTTP server metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize HTTP metrics.

        Args:
            registry: Prometheus registry to use
        """
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=registry,
        )

        self.requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method", "endpoint"],
            registry=registry,
        )


class LoadMetrics:
    """Synthetic load endpoint metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize load metrics.

        Args:
            registry: Prometheus registry to use
        """
        # Requests by outcome (served | parse_error)
        self.requests = Counter(
            "load_requests_total",
            "Total number of load requests handled",
            ["outcome"],
            registry=registry,
        )

        # Time spent in the busy-wait loop
        self.burn_duration = Histogram(
            "load_burn_duration_seconds",
            "Time spent burning CPU per request",
            buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
            registry=registry,
        )

        # Bytes written as response payload
        self.payload_bytes = Counter(
            "load_payload_bytes_total",
            "Total number of payload bytes generated",
            registry=registry,
        )


@lru_cache()
def setup_metrics() -> tuple[HTTPMetrics, LoadMetrics]:
    """Setup and return metric instances registered on the default registry.

    The instances are created once per process; repeated calls return the
    same pair so collectors are never registered twice.

    Returns:
        Tuple of (HTTPMetrics, LoadMetrics)
    """
    http_metrics = HTTPMetrics()
    load_metrics = LoadMetrics()
    return http_metrics, load_metrics


def get_metrics_handler(registry: CollectorRegistry = REGISTRY) -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Args:
        registry: Prometheus registry to expose

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(registry)

    return metrics_handler
