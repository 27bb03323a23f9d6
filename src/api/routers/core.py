"""Core routes for the threadclip API (root and health check)."""

from api.job_store import get_job_store
from api.schemas import HealthResponse, RootResponse
from fastapi import APIRouter

router = APIRouter(tags=["Core"])


@router.get(
    "/",
    response_model=RootResponse,
    summary="API root",
    description="Returns API name and version.",
)
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "threadclip API", "version": "1.0.0"}


@router.get(
    "/api/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns server health status and the number of tracked jobs.",
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "active_jobs": get_job_store().job_count()}
