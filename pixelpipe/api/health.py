"""Health check endpoint."""

from fastapi import APIRouter

from pixelpipe.pipeline.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")
