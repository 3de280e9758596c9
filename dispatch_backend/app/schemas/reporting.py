"""
Dashboard schemas.
"""

from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from decimal import Decimal


class KpiSummaryResponse(BaseModel):
    """Headline KPIs; load effectiveness is null when nothing was loaded."""
    total_finished_trips: int
    trips_in_progress: int
    total_revenue: Decimal
    load_effectiveness: Optional[float]

    class Config:
        from_attributes = True


class DailyRevenueResponse(BaseModel):
    date: date
    revenue: Decimal

    class Config:
        from_attributes = True


class ProductMixResponse(BaseModel):
    product_id: int
    product_name: str
    units_sold: int
    revenue: Decimal

    class Config:
        from_attributes = True


class AuditRowResponse(BaseModel):
    """One reconciled line item with its trip context."""
    trip_id: int
    line_item_id: int
    line_number: int
    finished_at: datetime
    closed_on: date
    driver_name: str
    vehicle_plate: str
    team_name: Optional[str]
    product_id: int
    product_name: str
    opening_quantity: int
    closing_quantity: int
    units_sold: int
    unit_price: Decimal
    revenue: Decimal

    class Config:
        from_attributes = True
