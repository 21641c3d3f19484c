# ============================================================================
# Order Assets - FastAPI Application Entry Point
# ============================================================================
"""
Main FastAPI application module for the order asset service.

This module sets up the FastAPI application with:
- CORS middleware configuration for the storefront frontend
- Application startup/shutdown event handlers
- API router integration
- Health endpoint covering database and object storage

Usage:
    Direct: python -m order_assets.main
    Docker: uvicorn order_assets.main:app --host 0.0.0.0 --port 8000 --reload
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1 import api_router
from .celery_app import app as celery_app  # noqa: F401  current app for shared_task .delay()
from .config import settings
from .core.database.database_service import get_database_service
from .core.storage.minio_service import get_asset_store

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("order_assets.main")

# ============================================================================
# APPLICATION INITIALIZATION
# ============================================================================

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=(
        "Order Assets API\n\n"
        "Keeps a durable copy of every image an order references, in sync with "
        "the customer's jacket configuration across create, edit and delete."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")

# ============================================================================
# APPLICATION EVENT HANDLERS
# ============================================================================


@app.on_event("startup")
async def startup_event() -> None:
    """Create missing tables and report storage reachability."""
    logger.info(f"Starting {settings.api_title} {settings.api_version} (debug={settings.debug})")
    await get_database_service().init_db()

    connected, error = await asyncio.to_thread(get_asset_store().check_health)
    if connected:
        logger.info(f"Object storage ready (bucket={settings.minio_bucket})")
    else:
        logger.warning(f"Object storage unavailable: {error}")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    logger.info("Shutting down")
    await get_database_service().close()


# ============================================================================
# HEALTH
# ============================================================================


@app.get("/health", tags=["System"])
async def health() -> Dict[str, Any]:
    database = await get_database_service().health_check()
    connected, error = await asyncio.to_thread(get_asset_store().check_health)
    healthy = database.get("connected") and connected
    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "database": database,
        "storage": {"connected": connected, "error": error},
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("order_assets.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
