"""Therapy Progress FastAPI Application - Main Entry Point

Records therapy completions and exposes progress to patients and therapists.
"""

import os

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.therapy_progress import router as therapy_progress_router

logger = structlog.get_logger(__name__)

_docs_enabled = os.environ.get("THERAPY_PROGRESS_ENV") != "production"

app = FastAPI(
    title="Therapy Progress",
    version="0.1.0",
    description="Therapy session completion tracking and progress reporting",
    docs_url="/docs" if _docs_enabled else None,
    redoc_url="/redoc" if _docs_enabled else None,
)


# =============================================================================
# Health Checks
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint for the load balancer"""
    return {
        "status": "healthy",
        "service": "therapy-progress",
        "version": "0.1.0",
    }


@app.get("/healthz")
async def healthz():
    """Kubernetes-style health check"""
    return {"status": "ok"}


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Return structured validation errors without exposing internal details"""
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invalid request",
            "type": "validation_error",
        },
    )


# =============================================================================
# API Routers
# =============================================================================

app.include_router(therapy_progress_router)


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Log application startup"""
    logger.info("therapy_progress_api_startup", docs_enabled=_docs_enabled)


@app.on_event("shutdown")
async def shutdown_event():
    """Log application shutdown"""
    logger.info("therapy_progress_api_shutdown")


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "service": "therapy-progress",
        "description": "Therapy session completion tracking",
        "version": "0.1.0",
        "docs": "/docs" if _docs_enabled else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, workers=2)
