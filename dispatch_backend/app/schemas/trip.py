"""
Trip schemas.

Schemas for opening, closing and viewing trips.
"""

from pydantic import BaseModel, Field, StrictInt
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from dispatch_backend.app.models.trip_enums import TripStatus


class CargoLineIn(BaseModel):
    """One manifest line. Quantity rules are enforced by the trip builder."""
    product_id: int
    price_tier_id: int
    opening_quantity: StrictInt


class TripOpenRequest(BaseModel):
    """Supervisor is derived from the driver's team and cannot be supplied."""
    vehicle_id: int
    driver_id: int
    lines: List[CargoLineIn] = Field(default_factory=list)


class ClosingLineIn(BaseModel):
    line_item_id: int
    closing_quantity: StrictInt


class TripCloseRequest(BaseModel):
    lines: List[ClosingLineIn] = Field(default_factory=list)
    expected_version: Optional[int] = None


class TripLineItemResponse(BaseModel):
    id: int
    line_number: int
    product_id: int
    price_tier_id: int
    opening_quantity: int
    closing_quantity: Optional[int]
    units_sold: Optional[int]
    unit_price: Decimal
    revenue: Optional[Decimal]

    class Config:
        from_attributes = True


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    vehicle_id: int
    driver_id: int
    supervisor_id: int
    team_id: Optional[int]
    status: TripStatus
    started_at: datetime
    finished_at: Optional[datetime]
    total_revenue: Optional[Decimal]
    version: int
    line_items: List[TripLineItemResponse] = []

    class Config:
        from_attributes = True


class TripSummaryResponse(BaseModel):
    """Trip without its line items, for lists."""
    id: int
    vehicle_id: int
    driver_id: int
    supervisor_id: int
    status: TripStatus
    started_at: datetime
    finished_at: Optional[datetime]
    total_revenue: Optional[Decimal]

    class Config:
        from_attributes = True
