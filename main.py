# ============================================================================
# REPAIR COORDINATOR - MAIN APPLICATION
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application running the coordinator in the background
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repair Coordinator Main Application

FastAPI application that:
1. Opens the Cassandra session
2. Runs the coordinator (heartbeat) in the background
3. Serves read-only coordination diagnostics

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from __version__ import __version__, BUILD_DATE, EPOCH
from repositories.database import init_session, close_session
from orchestrator import Coordinator
from api.routes import router, set_services

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instances
_coordinator: Coordinator = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Opens the store session and starts the coordinator on startup,
    stops both on shutdown.
    """
    global _coordinator

    logger.info(f"Starting Repair Coordinator v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

    session = await init_session()
    logger.info("Store session initialized")

    _coordinator = Coordinator(session)
    set_services(coordinator=_coordinator)

    await _coordinator.start()
    logger.info("Coordinator started")

    yield

    # Shutdown
    logger.info("Shutting down Repair Coordinator...")

    await _coordinator.stop()
    await close_session()

    logger.info("Repair Coordinator stopped")


# Create FastAPI app
app = FastAPI(
    title="Repair Coordinator",
    description=f"Epoch {EPOCH} distributed repair coordination",
    version=__version__,
    lifespan=lifespan,
)

# Include API routes
app.include_router(router)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Repair Coordinator",
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
