"""
FastAPI Application Entry Point.

This is the main application file for the Dispatch Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.logging_config import configure_logging
from dispatch_backend.app.core.observability import ObservabilityMiddleware
from dispatch_backend.app.api.v1.router import router as api_v1_router
from dispatch_backend.app.db.session import engine, Base
from dispatch_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.audit_log import AuditLog
from dispatch_backend.app.models.team import Team
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.models.driver import Driver
from dispatch_backend.app.models.product import Product, ProductPrice
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_line_item import TripLineItem
from dispatch_backend.app.models.resource_lock import ResourceLock

configure_logging(settings.log_level, settings.log_json)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup and disposes the engine on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Trip dispatch and cargo reconciliation backend",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Dispatch Backend API",
        "docs": "/docs",
        "health": "/health",
    }
