"""
Trip lifecycle service.

Coordinates catalog reads, the pure trip builder and reconciliation rules,
and the trip store. Rejected requests leave no writes behind and are logged
at WARNING with their error code.
"""

from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.clock import utc_today, utcnow
from dispatch_backend.app.core.exceptions import (
    AppException,
    ConcurrentModificationError,
    ResourceNotFoundError,
)
from dispatch_backend.app.core.logging_config import get_logger
from dispatch_backend.app.domain.trips.reconciliation import ClosingLine, reconcile
from dispatch_backend.app.domain.trips.trip_builder import CargoLine, build_open_trip
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import TripStatus
from dispatch_backend.app.services.catalog import CatalogProvider
from dispatch_backend.app.services.trip_store import TripStore

logger = get_logger("trips")


def _rejected(event: str, exc: AppException, **context) -> None:
    logger.warning(
        event,
        extra={"error_code": exc.error_code, "reason": exc.message, "retryable": exc.retryable, **context},
    )


class TripLifecycleService:

    @staticmethod
    async def open_trip(
        db: AsyncSession,
        vehicle_id: int,
        driver_id: int,
        cargo: Iterable[CargoLine],
    ) -> Trip:
        """
        Open a trip for a vehicle and driver with the given cargo manifest.

        Steps:
        1. Load every referenced catalog entity into one snapshot
        2. Validate the manifest, eligibility and supervisor (pure)
        3. Persist trip, line items, status changes, locks and the
           TRIP_OPENED audit row atomically
        """
        cargo = list(cargo)
        snapshot = await CatalogProvider.load_snapshot(
            db, vehicle_id, driver_id, [line.product_id for line in cargo]
        )

        try:
            command = build_open_trip(vehicle_id, driver_id, cargo, snapshot, utc_today())
            trip = await TripStore.open_trip(
                db,
                command,
                snapshot.vehicles[command.vehicle_id],
                snapshot.drivers[command.driver_id],
                utcnow(),
            )
        except AppException as exc:
            _rejected("Trip opening rejected", exc, vehicle_id=vehicle_id, driver_id=driver_id)
            raise

        logger.info(
            "Trip opened",
            extra={
                "trip_id": trip.id,
                "vehicle_id": trip.vehicle_id,
                "driver_id": trip.driver_id,
                "supervisor_id": trip.supervisor_id,
                "lines": len(command.lines),
            },
        )
        return trip

    @staticmethod
    async def close_trip(
        db: AsyncSession,
        trip_id: int,
        closing: Iterable[ClosingLine],
        expected_version: Optional[int] = None,
    ) -> Trip:
        """
        Reconcile final quantities and finish the trip.

        All-or-nothing: any rejected line leaves every line item, the trip
        status and the resources untouched.
        """
        closing = list(closing)

        try:
            trip = await TripStore.get_trip(db, trip_id, for_update=True)
            if trip is None:
                raise ResourceNotFoundError("Trip", trip_id)

            if (
                expected_version is not None
                and trip.status == TripStatus.IN_PROGRESS
                and trip.version != expected_version
            ):
                raise ConcurrentModificationError(
                    "trip", trip_id, f"at version {trip.version}, expected {expected_version}"
                )

            product_names = await CatalogProvider.product_names(
                db, [item.product_id for item in trip.line_items]
            )
            result = reconcile(trip, closing, product_names)
            trip = await TripStore.close_trip(db, trip, result, utcnow())
        except AppException as exc:
            await db.rollback()
            _rejected("Trip closing rejected", exc, trip_id=trip_id)
            raise

        logger.info(
            "Trip closed",
            extra={
                "trip_id": trip.id,
                "total_revenue": str(result.total_revenue),
                "units_sold": result.total_units_sold,
            },
        )
        return trip

    @staticmethod
    async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
        trip = await TripStore.get_trip(db, trip_id)
        if trip is None:
            raise ResourceNotFoundError("Trip", trip_id)
        return trip
