"""
Prometheus metrics for the audit chain.

Exposes append and verification metrics via HTTP /metrics endpoint for Prometheus scraping.

Environment Variables:
    METRICS_ENABLED: Enable metrics server (true/false) - default: false
    METRICS_PORT: HTTP port for /metrics endpoint - default: 8080

Usage:
    from auditchain.runtime.metrics import init_metrics, track_append

    init_metrics()
    track_append("execution.order.filled")

    with track_verify_duration():
        ...

The helpers are no-ops until init_metrics() has run, so library code can
call them unconditionally.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Metrics registry (module-level, thread-safe)
APPENDS_TOTAL: Optional[Counter] = None
APPEND_FAILURES_TOTAL: Optional[Counter] = None
APPEND_DURATION: Optional[Histogram] = None
QUEUE_DEPTH: Optional[Gauge] = None
VERIFY_DURATION: Optional[Histogram] = None
CHAIN_BROKEN_TOTAL: Optional[Counter] = None

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """
    Initialize Prometheus metrics (call once at startup).

    Idempotent; a second call is ignored so the default registry never sees
    duplicate collectors. Thread-safe via module-level lock.
    """
    global APPENDS_TOTAL, APPEND_FAILURES_TOTAL, APPEND_DURATION
    global QUEUE_DEPTH, VERIFY_DURATION, CHAIN_BROKEN_TOTAL
    global _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        APPENDS_TOTAL = Counter(
            "auditchain_appends_total",
            "Total number of audit entries persisted to the chain",
            labelnames=["event_type"],
        )

        APPEND_FAILURES_TOTAL = Counter(
            "auditchain_append_failures_total",
            "Total number of audit appends that failed to persist",
            labelnames=["event_type"],
        )

        APPEND_DURATION = Histogram(
            "auditchain_append_duration_seconds",
            "Duration of the read-tip/compute/persist critical section in seconds",
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
        )

        QUEUE_DEPTH = Gauge(
            "auditchain_queue_depth",
            "Number of append requests waiting for the writer",
        )

        VERIFY_DURATION = Histogram(
            "auditchain_verify_duration_seconds",
            "Duration of chain verification runs in seconds",
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
        )

        CHAIN_BROKEN_TOTAL = Counter(
            "auditchain_chain_broken_total",
            "Total number of verification runs that found a break or tamper",
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")


def start_metrics_server(enabled: bool, port: int) -> None:
    """
    Start Prometheus metrics HTTP server in background thread.

    Args:
        enabled: Whether to start metrics server (from METRICS_ENABLED env var)
        port: HTTP port for /metrics endpoint (from METRICS_PORT env var)
    """
    if not enabled:
        logger.info("Metrics server disabled (METRICS_ENABLED=false)")
        return

    init_metrics()

    try:
        # start_http_server is non-blocking (starts daemon thread)
        start_http_server(port, addr="0.0.0.0")
        logger.info("Metrics server started", extra={"port": port})
    except OSError as e:
        logger.error("Failed to start metrics server", extra={"port": port, "error": str(e)})


def track_append(event_type: str) -> None:
    if APPENDS_TOTAL is not None:
        APPENDS_TOTAL.labels(event_type=event_type).inc()


def track_append_failure(event_type: str) -> None:
    if APPEND_FAILURES_TOTAL is not None:
        APPEND_FAILURES_TOTAL.labels(event_type=event_type).inc()


def set_queue_depth(depth: int) -> None:
    if QUEUE_DEPTH is not None:
        QUEUE_DEPTH.set(depth)


def track_chain_broken() -> None:
    if CHAIN_BROKEN_TOTAL is not None:
        CHAIN_BROKEN_TOTAL.inc()


@contextmanager
def track_append_duration() -> Generator[None, None, None]:
    """Time one pass through the appender's critical section."""
    if APPEND_DURATION is None:
        yield
        return

    with APPEND_DURATION.time():
        yield


@contextmanager
def track_verify_duration() -> Generator[None, None, None]:
    """
    Context manager for tracking verification duration.

    Usage:
        with track_verify_duration():
            result = verifier.verify_chain(start, end)
    """
    if VERIFY_DURATION is None:
        yield
        return

    with VERIFY_DURATION.time():
        yield
