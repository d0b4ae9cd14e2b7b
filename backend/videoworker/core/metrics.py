"""Prometheus metrics for the worker pool.

Tracks job outcomes, job duration and media operation latency.
"""

import os

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
    start_http_server,
)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Prefork pool children write to a shared directory in multiprocess mode
if "PROMETHEUS_MULTIPROC_DIR" in os.environ or "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "video_worker_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Job Metrics
# ============================================
JOBS_ENQUEUED_TOTAL = Counter(
    "jobs_enqueued_total",
    "Total number of jobs published to the queue",
    ["job_type"],
    registry=REGISTRY,
)

JOBS_TOTAL = Counter(
    "jobs_total",
    "Total number of jobs by type and outcome",
    ["job_type", "status"],
    registry=REGISTRY,
)

JOB_DURATION_SECONDS = Histogram(
    "job_duration_seconds",
    "Job processing duration in seconds",
    ["job_type"],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1200, 1800],
    registry=REGISTRY,
)

JOBS_IN_PROGRESS = Gauge(
    "jobs_in_progress",
    "Number of jobs currently being processed",
    ["job_type"],
    registry=REGISTRY,
    multiprocess_mode="livesum",
)


# ============================================
# Media Operation Metrics
# ============================================
MEDIA_OPERATION_DURATION_SECONDS = Histogram(
    "media_operation_duration_seconds",
    "Media operation duration in seconds",
    ["operation"],
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 300, 600, 1200],
    registry=REGISTRY,
)

MEDIA_OPERATION_FAILURES_TOTAL = Counter(
    "media_operation_failures_total",
    "Total failed media operations",
    ["operation"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format.

    Returns:
        bytes: Prometheus-formatted metrics
    """
    return generate_latest(REGISTRY)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })


def start_metrics_server(port: int) -> None:
    """Expose the registry over HTTP on the given port."""
    start_http_server(port, registry=REGISTRY)


def mark_process_dead(pid: int) -> None:
    """Drop a dead pool process's live gauges in multiprocess mode."""
    if "PROMETHEUS_MULTIPROC_DIR" in os.environ or "prometheus_multiproc_dir" in os.environ:
        multiprocess.mark_process_dead(pid)
