# src/brokerdesk/main.py
"""Main entry point for the Brokerdesk application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from brokerdesk.api.v1 import announcements_router
from brokerdesk.core.settings import settings
from brokerdesk.db.change_feed import get_change_feed

# Configure logger for this module
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Brokerdesk API",
    description="Internal announcements with per-user read tracking",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(announcements_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("%s %s starting", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    # Wake every badge listener so open websockets can finish.
    get_change_feed().close_all()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "Brokerdesk API",
        "version": settings.app_version,
        "description": "Internal announcements with per-user read tracking",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("brokerdesk.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
