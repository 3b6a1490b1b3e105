"""
FastAPI application entry point for the KPI Report API.

This module configures logging and CORS, initializes the local key-value
store, registers the API routers and starts the ASGI server when run
directly:

    python -m kpi_report.main
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kpi_report import __version__
from kpi_report.api import api_router
from kpi_report.core.storage import close_store, init_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for application startup and shutdown.

    On startup:
        - Initialize the key-value store (API key, cached narratives)
    On shutdown:
        - Release the store
    """
    logger.info("KPI Report API starting")
    init_store()
    yield
    logger.info("KPI Report API shutting down")
    close_store()


# Create FastAPI application
app = FastAPI(
    title="KPI Report API",
    version=__version__,
    description=(
        "Sales KPI analytics backend. Aggregates CRM export batches into "
        "regional, agent, segment and trend breakdowns, recommendation lists, "
        "meeting agenda payloads and AI narrative prompts."
    ),
    lifespan=lifespan,
)

# The dashboard runs on the Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for uptime monitoring.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "KPI Report API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kpi_report.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
