"""
Reporting Service.

Loads the finished-trip log for dashboards and hands it to the pure
aggregator. Focused on READ-ONLY operations.

Dates are UTC calendar days of `finished_at`; both ends of a range are
inclusive. An optional supervisor filter scopes every report to the trips
that supervisor owned at open time.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.domain.reporting import aggregator
from dispatch_backend.app.domain.reporting.aggregator import (
    ClosedLineRecord,
    DailyRevenue,
    DateRange,
    FinishedTripRecord,
    KpiSummary,
    Page,
    ProductMixEntry,
)
from dispatch_backend.app.models.driver import Driver
from dispatch_backend.app.models.product import Product
from dispatch_backend.app.models.team import Team
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.models.trip_line_item import TripLineItem
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.services.trip_store import TripStore


def _finished_in(date_range: DateRange, supervisor_id: Optional[int]) -> list:
    conditions = [
        Trip.status == TripStatus.FINISHED,
        Trip.finished_at >= date_range.start,
    ]
    if date_range.end_exclusive is not None:
        conditions.append(Trip.finished_at < date_range.end_exclusive)
    if supervisor_id is not None:
        conditions.append(Trip.supervisor_id == supervisor_id)
    return conditions


def _closed_lines_query(date_range: DateRange, supervisor_id: Optional[int]):
    return (
        select(
            TripLineItem.trip_id,
            TripLineItem.id.label("line_item_id"),
            TripLineItem.line_number,
            Trip.finished_at,
            Driver.first_name,
            Driver.last_name,
            Vehicle.plate,
            Team.name.label("team_name"),
            TripLineItem.product_id,
            Product.name.label("product_name"),
            TripLineItem.opening_quantity,
            TripLineItem.closing_quantity,
            TripLineItem.unit_price,
            TripLineItem.revenue,
        )
        .select_from(TripLineItem)
        .join(Trip, Trip.id == TripLineItem.trip_id)
        .join(Driver, Driver.id == Trip.driver_id)
        .join(Vehicle, Vehicle.id == Trip.vehicle_id)
        .join(Product, Product.id == TripLineItem.product_id)
        .outerjoin(Team, Team.id == Trip.team_id)
        .where(*_finished_in(date_range, supervisor_id))
    )


def _to_line_record(row) -> ClosedLineRecord:
    return ClosedLineRecord(
        trip_id=row.trip_id,
        line_item_id=row.line_item_id,
        line_number=row.line_number,
        finished_at=row.finished_at,
        driver_name=f"{row.first_name} {row.last_name}",
        vehicle_plate=row.plate,
        team_name=row.team_name,
        product_id=row.product_id,
        product_name=row.product_name,
        opening_quantity=row.opening_quantity,
        closing_quantity=row.closing_quantity,
        unit_price=row.unit_price,
        revenue=row.revenue,
    )


class ReportingService:

    @staticmethod
    async def finished_trips(
        db: AsyncSession, date_range: DateRange, supervisor_id: Optional[int] = None
    ) -> List[FinishedTripRecord]:
        query = select(Trip.id, Trip.finished_at, Trip.total_revenue).where(
            *_finished_in(date_range, supervisor_id)
        )
        rows = (await db.execute(query)).all()
        return [
            FinishedTripRecord(trip_id=row.id, finished_at=row.finished_at, total_revenue=row.total_revenue)
            for row in rows
        ]

    @staticmethod
    async def closed_lines(
        db: AsyncSession, date_range: DateRange, supervisor_id: Optional[int] = None
    ) -> List[ClosedLineRecord]:
        rows = (await db.execute(_closed_lines_query(date_range, supervisor_id))).all()
        return [_to_line_record(row) for row in rows]

    @staticmethod
    async def get_kpi_summary(
        db: AsyncSession, date_from: date, date_to: date, supervisor_id: Optional[int] = None
    ) -> KpiSummary:
        """
        KPIs over trips finished in range.

        `trips_in_progress` is a point-in-time count and ignores the range.
        """
        date_range = aggregator.validate_range(date_from, date_to)
        trips = await ReportingService.finished_trips(db, date_range, supervisor_id)
        lines = await ReportingService.closed_lines(db, date_range, supervisor_id)
        in_progress = await TripStore.count_in_progress(db, supervisor_id)
        return aggregator.kpi_summary(trips, lines, in_progress)

    @staticmethod
    async def get_daily_trend(
        db: AsyncSession, date_from: date, date_to: date, supervisor_id: Optional[int] = None
    ) -> List[DailyRevenue]:
        date_range = aggregator.validate_range(date_from, date_to, max_days=settings.max_trend_days)
        trips = await ReportingService.finished_trips(db, date_range, supervisor_id)
        return aggregator.daily_trend(date_range, trips)

    @staticmethod
    async def get_product_mix(
        db: AsyncSession, date_from: date, date_to: date, supervisor_id: Optional[int] = None
    ) -> List[ProductMixEntry]:
        date_range = aggregator.validate_range(date_from, date_to)
        lines = await ReportingService.closed_lines(db, date_range, supervisor_id)
        return aggregator.product_mix(lines)

    @staticmethod
    async def get_audit_trail(
        db: AsyncSession,
        date_from: date,
        date_to: date,
        page: int,
        size: int,
        supervisor_id: Optional[int] = None,
    ) -> Page[ClosedLineRecord]:
        """
        One row per reconciled line item, newest trip first.

        Ordering is (finished_at desc, trip id desc, line number asc), so a
        trip's lines stay together and pages are stable.
        """
        date_range = aggregator.validate_range(date_from, date_to)
        aggregator.validate_page(page, size)

        count_query = (
            select(func.count(TripLineItem.id))
            .select_from(TripLineItem)
            .join(Trip, Trip.id == TripLineItem.trip_id)
            .where(*_finished_in(date_range, supervisor_id))
        )
        total = (await db.execute(count_query)).scalar() or 0

        query = (
            _closed_lines_query(date_range, supervisor_id)
            .order_by(Trip.finished_at.desc(), Trip.id.desc(), TripLineItem.line_number.asc())
            .offset(page * size)
            .limit(size)
        )
        rows = (await db.execute(query)).all()

        return aggregator.build_page([_to_line_record(row) for row in rows], total, page, size)
