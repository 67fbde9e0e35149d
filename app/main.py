"""
FastAPI application entry point for Clipstream.

Clipstream is the backend core of the clipping service, providing:
1. Live job progress streams (NDJSON) fed by the external workflow engine
2. OAuth token lifecycle for connected social accounts
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.db.session import init_db
from app.routers import callbacks, health, progress, social
from app.services.progress_broker import get_progress_broker

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown events.
    Creates database tables on startup and reports open streams on shutdown.
    """
    logger.info("Starting Clipstream...")

    init_db()
    logger.info("Database tables verified")

    app.state.progress_broker = get_progress_broker()

    logger.info("Clipstream ready to accept requests.")

    yield

    logger.info("Shutting down Clipstream...")
    open_jobs = app.state.progress_broker.active_jobs()
    if open_jobs:
        # Clients reconnect and resolve from the persisted job record
        logger.warning(f"Dropping progress subscribers of {len(open_jobs)} jobs")
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Clipstream",
    description="""
Clipstream - backend core of the video clipping service.

## Features

### Progress (`/jobs/{job_id}/progress`)
- `GET` streams newline-delimited JSON progress events for a job
- `POST` receives progress updates from the workflow engine

### Callbacks (`/jobs/{job_id}/callback`)
- Final job result from the workflow engine

### Social accounts (`/social/{provider}`)
- OAuth connect redirect and authorization callback
- Connection status with transparent token refresh
- Disconnect
    """,
    version=settings.app_version,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict to specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(progress.router)
app.include_router(callbacks.router)
app.include_router(social.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "docs": "/docs",
    }
