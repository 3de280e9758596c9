"""
Trip API Endpoints.

Open trips with a cargo manifest, reconcile them on return, and browse
active and finished trips.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.domain.trips.reconciliation import ClosingLine
from dispatch_backend.app.domain.trips.trip_builder import CargoLine
from dispatch_backend.app.schemas.common import PagedResponse
from dispatch_backend.app.schemas.trip import (
    TripOpenRequest, TripCloseRequest, TripResponse, TripSummaryResponse
)
from dispatch_backend.app.services.trip_lifecycle import TripLifecycleService
from dispatch_backend.app.services.trip_store import TripStore, TripSearchFilters

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def open_trip(
    request: TripOpenRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Open a trip.

    Validates:
    - Manifest is non-empty, quantities positive, (product, tier) pairs unique
    - Products exist and are active, tiers belong to their product
    - Vehicle and driver are AVAILABLE, license is valid
    - Driver belongs to a team with a supervisor

    Actions:
    - Snapshot unit prices into line items
    - Vehicle -> ON_TRIP, driver -> BUSY
    """
    cargo = [
        CargoLine(
            product_id=line.product_id,
            price_tier_id=line.price_tier_id,
            opening_quantity=line.opening_quantity,
        )
        for line in request.lines
    ]
    return await TripLifecycleService.open_trip(db, request.vehicle_id, request.driver_id, cargo)


@router.post("/{trip_id}/close", response_model=TripResponse)
async def close_trip(
    request: TripCloseRequest,
    trip_id: int = Path(..., description="Trip ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Close a trip with one closing quantity per line item.

    Revenue per line is (opening - closing) x unit price. Any invalid line
    rejects the whole request.
    """
    closing = [
        ClosingLine(line_item_id=line.line_item_id, closing_quantity=line.closing_quantity)
        for line in request.lines
    ]
    return await TripLifecycleService.close_trip(db, trip_id, closing, request.expected_version)


@router.get("/active", response_model=List[TripResponse])
async def list_active_trips(
    supervisor_id: Optional[int] = Query(None, description="Only trips owned by this supervisor"),
    db: AsyncSession = Depends(get_db)
):
    """All IN_PROGRESS trips, most recently opened first."""
    return await TripStore.list_active(db, supervisor_id)


@router.get("/finished", response_model=PagedResponse[TripSummaryResponse])
async def search_finished_trips(
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    vehicle_id: Optional[int] = Query(None),
    driver_id: Optional[int] = Query(None),
    supervisor_id: Optional[int] = Query(None),
    page: int = Query(0, description="Zero-based page number"),
    size: int = Query(settings.default_page_size, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db)
):
    """FINISHED trips filtered by close date and resources, newest first."""
    filters = TripSearchFilters(
        date_from=date_from,
        date_to=date_to,
        vehicle_id=vehicle_id,
        driver_id=driver_id,
        supervisor_id=supervisor_id,
    )
    result = await TripStore.search_finished(db, filters, page, size)
    return PagedResponse[TripSummaryResponse].model_validate(result, from_attributes=True)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    db: AsyncSession = Depends(get_db)
):
    """Trip detail with line items."""
    return await TripLifecycleService.get_trip(db, trip_id)
