"""
Prometheus Metrics for Observability

Tracks pipeline stage latency, job outcomes and cleanup activity.
Exposes /api/metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Pipeline Latency - Per Stage
pipeline_latency_seconds = Histogram(
    "pipeline_latency_seconds",
    "Time spent in each pipeline stage",
    labelnames=["stage", "status"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

# Jobs Counter
jobs_total = Counter(
    "pixelpipe_jobs_total",
    "Total number of images processed",
    labelnames=["status", "failure_stage"]
)

# Active Jobs
active_jobs_gauge = Gauge(
    "pixelpipe_active_jobs",
    "Number of images currently in the pipeline"
)

# Batch requests
batch_items_total = Counter(
    "pixelpipe_batch_items_total",
    "Total number of batch items by outcome",
    labelnames=["status"]
)

# Cleanup Metrics
cleanup_files_deleted_total = Counter(
    "cleanup_files_deleted_total",
    "Files reclaimed by the cleanup sweep",
    labelnames=["directory"]
)

cleanup_failures_total = Counter(
    "cleanup_failures_total",
    "Files the cleanup sweep could not inspect or delete",
    labelnames=["directory"]
)

cleanup_sweep_duration_seconds = Histogram(
    "cleanup_sweep_duration_seconds",
    "Duration of one cleanup sweep over all working directories",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Application Info
app_info = Info(
    "pixelpipe_app",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_stage_latency(stage: str):
    """
    Context manager to track stage latency.

    Usage:
        with track_stage_latency("upscale"):
            # do work
    """
    start = time.time()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.time() - start
        pipeline_latency_seconds.labels(stage=stage, status=status).observe(duration)


@contextmanager
def track_active_job():
    """Count an image as in flight for the duration of the block."""
    active_jobs_gauge.inc()
    try:
        yield
    finally:
        active_jobs_gauge.dec()


def record_job_completion(status: str, failure_stage: str = "none"):
    """Record job completion."""
    jobs_total.labels(status=status, failure_stage=failure_stage).inc()


def record_batch_item(success: bool):
    batch_items_total.labels(status="success" if success else "failed").inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
