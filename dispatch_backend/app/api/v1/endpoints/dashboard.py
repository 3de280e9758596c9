"""
Dashboard API Endpoints.

Read-only KPIs, revenue trend, product mix and the reconciliation audit
report over trips finished in a date range.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.services.reporting import ReportingService
from dispatch_backend.app.schemas.common import PagedResponse
from dispatch_backend.app.schemas.reporting import (
    KpiSummaryResponse, DailyRevenueResponse, ProductMixResponse, AuditRowResponse
)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=KpiSummaryResponse)
async def get_stats(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    supervisor_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Finished trips, in-progress trips, revenue and load effectiveness."""
    summary = await ReportingService.get_kpi_summary(db, date_from, date_to, supervisor_id)
    return KpiSummaryResponse.model_validate(summary, from_attributes=True)


@router.get("/trend", response_model=List[DailyRevenueResponse])
async def get_trend(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    supervisor_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Revenue per day, one point for every day in the range."""
    trend = await ReportingService.get_daily_trend(db, date_from, date_to, supervisor_id)
    return [DailyRevenueResponse.model_validate(point, from_attributes=True) for point in trend]


@router.get("/product-mix", response_model=List[ProductMixResponse])
async def get_product_mix(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    supervisor_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Units sold and revenue per product, highest revenue first."""
    mix = await ReportingService.get_product_mix(db, date_from, date_to, supervisor_id)
    return [ProductMixResponse.model_validate(entry, from_attributes=True) for entry in mix]


@router.get("/audit-report", response_model=PagedResponse[AuditRowResponse])
async def get_audit_report(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    page: int = Query(0, description="Zero-based page number"),
    size: int = Query(settings.default_page_size, le=settings.max_page_size),
    supervisor_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Reconciled line items with trip context, newest trip first."""
    result = await ReportingService.get_audit_trail(db, date_from, date_to, page, size, supervisor_id)
    return PagedResponse[AuditRowResponse].model_validate(result, from_attributes=True)
