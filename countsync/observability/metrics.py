"""
Prometheus metrics for the reconciliation engine.

Exposes sync progress via an HTTP /metrics endpoint for Prometheus scraping.

The HTTP server only starts when `countsync simulate --metrics-port PORT` is
given; otherwise metrics are recorded in-process only.

Usage:
    from countsync.observability.metrics import start_metrics_server, track_call

    start_metrics_server(enabled=True, port=8080)
    track_call("A", "success")
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Metrics registry (module-level, created once by init_metrics)
SINK_CALLS_TOTAL: Optional[Counter] = None
SINK_CALL_DURATION: Optional[Histogram] = None
LOCAL_COUNT: Optional[Gauge] = None
CONFIRMED_COUNT: Optional[Gauge] = None
PENDING_DELTA: Optional[Gauge] = None
DEAD_LETTERED: Optional[Gauge] = None

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """
    Initialize Prometheus metrics (call once at startup).

    Thread-safe via module-level lock; later calls are no-ops.
    """
    global SINK_CALLS_TOTAL, SINK_CALL_DURATION, LOCAL_COUNT
    global CONFIRMED_COUNT, PENDING_DELTA, DEAD_LETTERED
    global _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        # Sink call counter (labels: category, outcome)
        SINK_CALLS_TOTAL = Counter(
            "countsync_sink_calls_total",
            "Total number of apply-delta calls by outcome",
            labelnames=["category", "outcome"],
        )

        SINK_CALL_DURATION = Histogram(
            "countsync_sink_call_duration_seconds",
            "Latency of apply-delta calls in seconds",
            labelnames=["category"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )

        LOCAL_COUNT = Gauge(
            "countsync_local_count",
            "Events observed locally",
            labelnames=["category"],
        )

        CONFIRMED_COUNT = Gauge(
            "countsync_confirmed_count",
            "Events confirmed as applied remotely",
            labelnames=["category"],
        )

        PENDING_DELTA = Gauge(
            "countsync_pending_delta",
            "Events observed but not yet confirmed",
            labelnames=["category"],
        )

        # 1=dead-lettered, 0=in main rotation
        DEAD_LETTERED = Gauge(
            "countsync_dead_lettered",
            "Whether the category sits in the dead-letter area",
            labelnames=["category"],
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")


def start_metrics_server(enabled: bool, port: int) -> None:
    """
    Start Prometheus metrics HTTP server in background thread.

    Args:
        enabled: Whether to start metrics server (set by --metrics-port)
        port: HTTP port for /metrics endpoint (value of --metrics-port)
    """
    if not enabled:
        logger.info("Metrics server disabled (no --metrics-port given)")
        return

    init_metrics()

    try:
        start_http_server(port, addr="0.0.0.0")
        logger.info(f"Metrics server started on http://0.0.0.0:{port}/metrics")
    except OSError as e:
        logger.error(f"Failed to start metrics server: {e}")


@contextmanager
def track_call_duration(category: str) -> Generator[None, None, None]:
    """Time one sink call for category."""
    if SINK_CALL_DURATION is None:
        yield
        return

    with SINK_CALL_DURATION.labels(category=category).time():
        yield


def track_call(category: str, outcome: str) -> None:
    if SINK_CALLS_TOTAL is not None:
        SINK_CALLS_TOTAL.labels(category=category, outcome=outcome).inc()


def set_counts(category: str, local: int, confirmed: int) -> None:
    """Publish local/confirmed/pending gauges for category."""
    if LOCAL_COUNT is None:
        return
    LOCAL_COUNT.labels(category=category).set(local)
    CONFIRMED_COUNT.labels(category=category).set(confirmed)
    PENDING_DELTA.labels(category=category).set(local - confirmed)


def set_dead_letter(category: str, dead_lettered: bool) -> None:
    if DEAD_LETTERED is not None:
        DEAD_LETTERED.labels(category=category).set(1 if dead_lettered else 0)
