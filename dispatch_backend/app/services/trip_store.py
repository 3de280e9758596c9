"""
Trip State Store.

Authoritative record of trips and their lifecycle state. Opening and closing
are each one transaction, audit row included: either every row is written
and committed, or the session is rolled back and a typed error is raised.

Concurrency:
- Vehicle, Driver and Trip carry a `version_id_col`; a stale UPDATE raises
  StaleDataError, surfaced as ConcurrentModificationError.
- Active resource locks have a partial unique index; a second lock on the
  same vehicle or driver raises IntegrityError, surfaced the same way.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from dispatch_backend.app.core.exceptions import ConcurrentModificationError
from dispatch_backend.app.domain.catalog import rules
from dispatch_backend.app.domain.reporting.aggregator import Page, build_page, day_after, validate_page
from dispatch_backend.app.domain.trips.reconciliation import ReconciliationResult
from dispatch_backend.app.domain.trips.trip_builder import OpenTripCommand
from dispatch_backend.app.models.catalog_enums import DriverStatus, LockedResource, VehicleStatus
from dispatch_backend.app.models.driver import Driver
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.models.trip_line_item import TripLineItem
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.services.audit import log_event, AuditAction
from dispatch_backend.app.services.resource_locking import (
    create_resource_lock, get_active_lock, release_trip_locks
)


@dataclass(frozen=True)
class TripSearchFilters:
    """Filters for finished trips; dates apply to the close date."""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    vehicle_id: Optional[int] = None
    driver_id: Optional[int] = None
    supervisor_id: Optional[int] = None


class TripStore:

    @staticmethod
    async def get_trip(db: AsyncSession, trip_id: int, for_update: bool = False) -> Optional[Trip]:
        query = select(Trip).where(Trip.id == trip_id).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        return (await db.execute(query)).scalar_one_or_none()

    @staticmethod
    async def open_trip(
        db: AsyncSession,
        command: OpenTripCommand,
        vehicle: Vehicle,
        driver: Driver,
        now: datetime,
    ) -> Trip:
        """
        Persist a validated OpenTripCommand.

        Moves the vehicle to ON_TRIP and the driver to BUSY, creates the trip
        and its line items, locks both resources and records TRIP_OPENED, in
        one transaction.
        """
        vehicle_id = vehicle.id
        driver_id = driver.id
        if vehicle.version != command.vehicle_version:
            raise ConcurrentModificationError("vehicle", vehicle_id)
        if driver.version != command.driver_version:
            raise ConcurrentModificationError("driver", driver_id)

        try:
            rules.transition_vehicle(vehicle, VehicleStatus.ON_TRIP, by_trip=True)
            await _flush_versioned(db, "vehicle", vehicle_id)
            rules.transition_driver(driver, DriverStatus.BUSY, by_trip=True)
            await _flush_versioned(db, "driver", driver_id)

            trip = Trip(
                vehicle_id=command.vehicle_id,
                driver_id=command.driver_id,
                supervisor_id=command.supervisor_id,
                team_id=command.team_id,
                status=TripStatus.IN_PROGRESS,
                started_at=now,
            )
            for line in command.lines:
                trip.line_items.append(TripLineItem(
                    line_number=line.line_number,
                    product_id=line.product_id,
                    price_tier_id=line.price_tier_id,
                    opening_quantity=line.opening_quantity,
                    unit_price=line.unit_price,
                ))
            db.add(trip)
            await db.flush()  # Get trip ID

            await _lock(db, LockedResource.VEHICLE, vehicle_id, trip.id)
            await _lock(db, LockedResource.DRIVER, driver_id, trip.id)

            await log_event(
                db, AuditAction.TRIP_OPENED, "trip", trip.id,
                metadata={
                    "vehicle_id": command.vehicle_id,
                    "driver_id": command.driver_id,
                    "supervisor_id": command.supervisor_id,
                    "lines": [
                        {
                            "product_id": line.product_id,
                            "price_tier_id": line.price_tier_id,
                            "opening_quantity": line.opening_quantity,
                            "unit_price": str(line.unit_price),
                        }
                        for line in command.lines
                    ],
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        return trip

    @staticmethod
    async def close_trip(
        db: AsyncSession,
        trip: Trip,
        result: ReconciliationResult,
        now: datetime,
    ) -> Trip:
        """
        Apply a ReconciliationResult and finish the trip.

        Vehicle and driver return to AVAILABLE only if they are still held
        by the trip; a resource retired meanwhile stays RETIRED.
        """
        trip_id = trip.id
        settlements = {line.line_item_id: line for line in result.lines}

        try:
            for item in trip.line_items:
                settlement = settlements[item.id]
                item.closing_quantity = settlement.closing_quantity
                item.revenue = settlement.revenue

            trip.status = TripStatus.FINISHED
            trip.finished_at = max(now, trip.started_at)
            trip.total_revenue = result.total_revenue
            await _flush_versioned(db, "trip", trip_id)

            vehicle = (await db.execute(
                select(Vehicle).where(Vehicle.id == trip.vehicle_id).execution_options(populate_existing=True)
            )).scalar_one()
            if vehicle.status == VehicleStatus.ON_TRIP:
                rules.transition_vehicle(vehicle, VehicleStatus.AVAILABLE, by_trip=True)
                await _flush_versioned(db, "vehicle", vehicle.id)

            driver = (await db.execute(
                select(Driver).where(Driver.id == trip.driver_id).execution_options(populate_existing=True)
            )).scalar_one()
            if driver.status == DriverStatus.BUSY:
                rules.transition_driver(driver, DriverStatus.AVAILABLE, by_trip=True)
                await _flush_versioned(db, "driver", driver.id)

            await release_trip_locks(db, trip_id)
            await log_event(
                db, AuditAction.TRIP_CLOSED, "trip", trip_id,
                metadata={
                    "total_revenue": str(result.total_revenue),
                    "units_sold": result.total_units_sold,
                    "finished_at": trip.finished_at.isoformat(),
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        return trip

    @staticmethod
    async def list_active(db: AsyncSession, supervisor_id: Optional[int] = None) -> List[Trip]:
        query = select(Trip).where(Trip.status == TripStatus.IN_PROGRESS)
        if supervisor_id is not None:
            query = query.where(Trip.supervisor_id == supervisor_id)
        query = query.order_by(Trip.started_at.desc(), Trip.id.desc())
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def count_in_progress(db: AsyncSession, supervisor_id: Optional[int] = None) -> int:
        query = select(func.count(Trip.id)).where(Trip.status == TripStatus.IN_PROGRESS)
        if supervisor_id is not None:
            query = query.where(Trip.supervisor_id == supervisor_id)
        return (await db.execute(query)).scalar() or 0

    @staticmethod
    async def search_finished(
        db: AsyncSession,
        filters: TripSearchFilters,
        page: int,
        size: int,
    ) -> Page[Trip]:
        validate_page(page, size)

        conditions = [Trip.status == TripStatus.FINISHED]
        if filters.date_from is not None:
            conditions.append(Trip.finished_at >= datetime.combine(filters.date_from, datetime.min.time()))
        if filters.date_to is not None and day_after(filters.date_to) is not None:
            conditions.append(Trip.finished_at < day_after(filters.date_to))
        if filters.vehicle_id is not None:
            conditions.append(Trip.vehicle_id == filters.vehicle_id)
        if filters.driver_id is not None:
            conditions.append(Trip.driver_id == filters.driver_id)
        if filters.supervisor_id is not None:
            conditions.append(Trip.supervisor_id == filters.supervisor_id)

        total = (await db.execute(select(func.count(Trip.id)).where(*conditions))).scalar() or 0

        query = (
            select(Trip)
            .where(*conditions)
            .order_by(Trip.finished_at.desc(), Trip.id.desc())
            .offset(page * size)
            .limit(size)
        )
        trips = (await db.execute(query)).scalars().all()

        return build_page(trips, total, page, size)


async def _flush_versioned(db: AsyncSession, resource: str, resource_id: int) -> None:
    try:
        await db.flush()
    except StaleDataError:
        raise ConcurrentModificationError(resource, resource_id, "modified by another request")


async def _lock(db: AsyncSession, resource_type: LockedResource, resource_id: int, trip_id: int) -> None:
    holder = await get_active_lock(db, resource_type, resource_id)
    if holder is not None:
        raise ConcurrentModificationError(
            resource_type.value.lower(), resource_id, f"locked by in-progress trip {holder.trip_id}"
        )
    try:
        await create_resource_lock(db, resource_type, resource_id, trip_id)
    except IntegrityError:
        raise ConcurrentModificationError(
            resource_type.value.lower(), resource_id, "already held by another in-progress trip"
        )
