"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance and wires the
domain services during the lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from domainstack.adapters.repository.postgres import run_migrations
from domainstack.api.v1 import router as v1_router
from domainstack.bootstrap import build_container
from domainstack.config.logging import setup_logging
from domainstack.config.settings import get_settings
from domainstack.tasks.jobs import CeleryDispatcher

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Domain tracking API v1 - Claim domains and prove ownership",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool on startup
    - Runs migrations on startup
    - Wires the service container (jobs go to Celery)
    - Closes connection pool on shutdown
    """
    setup_logging()
    settings = get_settings()

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    logger.info("Running database migrations...")
    run_migrations(pool)

    # Store pool and services in app state for dependency injection
    app.state.pool = pool
    app.state.container = build_container(pool, settings, dispatcher=CeleryDispatcher())

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    pool.close()
    logger.info("Database connection pool closed")


app = FastAPI(
    title="domainstack",
    description="Domain ownership verification and expiry monitoring",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy"}
