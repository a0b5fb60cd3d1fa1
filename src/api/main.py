"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures lifespan events and wires storage adapters into app.state.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.cache.privileges import AccountPrivilegeCache
from src.adapters.repository.memory import (
    InMemoryAccountDirectory,
    InMemoryDatabase,
    InMemoryTokenRepository,
)
from src.adapters.repository.postgres import (
    PostgresAccountDirectory,
    PostgresTokenRepository,
    run_migrations,
)
from src.api.v1 import router as v1_router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Admin Registration Token API v1 - Issue, inspect and redeem admin tokens",
    },
]


def configure_memory_storage(app: FastAPI, bcrypt_cost: int) -> InMemoryDatabase:
    """Wire in-memory adapters into app.state and return the backing store."""
    database = InMemoryDatabase()
    app.state.pool = None
    app.state.memory_db = database
    app.state.token_repository = InMemoryTokenRepository(database)
    app.state.identity_provider = InMemoryAccountDirectory(database, bcrypt_cost=bcrypt_cost)
    app.state.privilege_cache = AccountPrivilegeCache(app.state.identity_provider)
    return database


def configure_postgres_storage(app: FastAPI, pool: ConnectionPool, bcrypt_cost: int) -> None:
    """Wire PostgreSQL adapters into app.state."""
    app.state.pool = pool
    app.state.memory_db = None
    app.state.token_repository = PostgresTokenRepository(pool)
    app.state.identity_provider = PostgresAccountDirectory(pool, bcrypt_cost=bcrypt_cost)
    app.state.privilege_cache = AccountPrivilegeCache(app.state.identity_provider)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool on startup (postgres backend)
    - Runs migrations on startup
    - Closes connection pool on shutdown
    """
    settings = get_settings()

    logger.info("Starting application...")

    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage")
        configure_memory_storage(app, settings.bcrypt_cost)
        logger.info("Application startup complete")
        yield
        logger.info("Shutting down application...")
        return

    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    # Run migrations
    logger.info("Running database migrations...")
    run_migrations(pool)

    configure_postgres_storage(app, pool, settings.bcrypt_cost)

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    pool.close()
    logger.info("Database connection pool closed")


app = FastAPI(
    title="journal-admin-tokens",
    description="Admin Registration Token API - Single-use tokens that atomically grant "
    "administrator access",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with store validation.

    Returns 200 OK if application and store are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    if pool is None:
        request.app.state.memory_db.ping()
        return {"status": "healthy"}

    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy"}
