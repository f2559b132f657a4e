"""
Health Check API Routes
System health and status endpoints
"""
from fastapi import APIRouter
from flowpatch.core.config import get_settings

router = APIRouter(tags=["Health"])

settings = get_settings()


@router.get("/health")
async def health_check():
    """
    Detailed health check endpoint

    Returns service status and the configured workflow store
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "store_backend": settings.STORE_BACKEND,
        "structural_validation": "skipped" if settings.SKIP_WORKFLOW_VALIDATION else "enforced"
    }


@router.get("/ping")
async def ping():
    """
    Simple ping endpoint for load balancers
    """
    return {"status": "ok"}
