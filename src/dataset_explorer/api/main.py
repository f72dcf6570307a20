"""FastAPI application entry point.

Main application setup with CORS, startup hooks, and route registration.

To run:
    uvicorn dataset_explorer.api.main:app --reload --port 8000
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dataset_explorer.api.dependencies import set_aggregation_service
from dataset_explorer.api.routes import aggregations
from dataset_explorer.core.aggregation_service import AggregationService
from dataset_explorer.core.config_loader import load_engine_config
from dataset_explorer.core.logging_config import configure_logging
from dataset_explorer.storage.datastore import DataStore

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    - Startup: load engine config, configure logging, open the DuckDB store
    - Shutdown: close pooled cursors and the DuckDB connection

    Args:
        app: FastAPI application instance

    Yields:
        None: Control returns to application during runtime
    """
    config = load_engine_config()
    configure_logging(config.log_level, json_logs=config.log_json)

    store = DataStore(config.database_path, pool_size=config.pool_size)
    set_aggregation_service(AggregationService(store, config))
    logger.info("api_started", database_path=config.database_path, max_workers=config.max_workers)

    yield

    set_aggregation_service(None)
    store.close()
    logger.info("api_stopped")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Dataset Explorer API",
    description="Filter-aware column aggregation over uploaded multi-table datasets",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# ============================================================================
# CORS Middleware
# ============================================================================

ALLOWED_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# Route Registration
# ============================================================================


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "service": "dataset-explorer-api"}


app.include_router(aggregations.router, prefix="/api", tags=["aggregations"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dataset_explorer.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
