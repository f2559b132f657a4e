"""
Flowpatch API
FastAPI application exposing incremental workflow edits

Architecture:
- Diff Engine: pure batch transaction over a workflow copy
- Service Layer: fetch, persist and activation around the engine
- Routes: thin HTTP mapping
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowpatch.api.routes import health, workflow
from flowpatch.core.config import get_settings
from flowpatch.core.logging import get_logger, setup_logging

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Get settings
settings = get_settings()

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Incremental diff/patch editing for node-and-connection automation workflows"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# CUSTOM EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Custom handler for request validation errors
    Provides clearer error messages for API consumers
    """
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(x) for x in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation Error",
            "message": "Request validation failed. Please check the required fields and formats.",
            "details": errors
        }
    )


# ============================================================================
# INCLUDE API ROUTERS
# ============================================================================

app.include_router(health.router)
app.include_router(workflow.router)


# ============================================================================
# ROOT ENDPOINT
# ============================================================================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with API information"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": [
            "/health",
            "/workflows/validate",
            "/workflows/{workflow_id}/diff"
        ]
    }


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Application startup"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Workflow store: {settings.STORE_BACKEND}")
    if settings.STORE_BACKEND == "filesystem":
        logger.info(f"Workflows path: {settings.WORKFLOWS_PATH}")
    if settings.SKIP_WORKFLOW_VALIDATION:
        logger.warning("Structural validation is downgraded to warnings (SKIP_WORKFLOW_VALIDATION)")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown"""
    logger.info(f"Shutting down {settings.APP_NAME}")


# ============================================================================
# MAIN (for running directly)
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "flowpatch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
