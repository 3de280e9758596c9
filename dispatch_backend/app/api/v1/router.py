"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from dispatch_backend.app.api.v1.endpoints import trips, dashboard, catalog, audit

router = APIRouter()

# Trip lifecycle: open, close, browse
router.include_router(trips.router)

# Read-only reporting
router.include_router(dashboard.router)

# Master data
router.include_router(catalog.router)

# Change history
router.include_router(audit.router)
