"""
API Router Module

All endpoints are prefixed with /api/

- GET  /api/health         - Health check
- POST /api/process-image  - Process a single image
- POST /api/batch-process  - Process multiple images
- GET  /api/metrics        - Prometheus metrics
"""

from fastapi import APIRouter

from pixelpipe.api.health import router as health_router
from pixelpipe.api.process import router as process_router
from pixelpipe.api.batch import router as batch_router
from pixelpipe.api.metrics import router as metrics_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(process_router, tags=["pipeline"])
api_router.include_router(batch_router, tags=["pipeline"])
api_router.include_router(metrics_router, tags=["metrics"])
