"""
Metrics Endpoint

GET /api/metrics - Prometheus metrics endpoint
"""

from fastapi import APIRouter, Response

from pixelpipe.core.metrics import get_metrics, get_metrics_content_type

router = APIRouter()


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Exposes:
    - pipeline_latency_seconds (per stage)
    - pixelpipe_jobs_total / pixelpipe_active_jobs
    - pixelpipe_batch_items_total
    - cleanup_files_deleted_total / cleanup_failures_total
    - http_requests_total
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
