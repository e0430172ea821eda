"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.config import settings
from app.api.router import api_router
from app.database import init_db
from app.exceptions import ProviderUnavailableError, RateLimitedError


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Bank-linked personal finance backend with recurring charge detection",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(RateLimitedError)
def rate_limited_handler(request: Request, exc: RateLimitedError):
    """Manual sync requested inside the cooldown window."""
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": str(int(exc.retry_after.total_seconds()))},
        content={
            "error": "Rate limit exceeded",
            "message": exc.message,
            "next_sync_available": exc.next_sync_available.isoformat(),
            "last_synced": exc.last_synced_at.isoformat(),
            "hours_remaining": exc.hours_remaining,
            "minutes_remaining": exc.minutes_remaining,
            "retry_after_seconds": int(exc.retry_after.total_seconds()),
        },
    )


@app.exception_handler(ProviderUnavailableError)
def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError):
    return JSONResponse(
        status_code=503,
        content={"error": "Provider unavailable", "details": str(exc)},
    )


@app.get("/")
def read_root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/api/v1/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "app_name": settings.app_name
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.api_host, port=settings.api_port)
