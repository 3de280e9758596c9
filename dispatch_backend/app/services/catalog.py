"""
Catalog Provider.

Read side of master data consumed by the trip engine: vehicles, drivers with
their team and derived supervisor, products and price tiers. READ-ONLY.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.domain.trips.trip_builder import CatalogSnapshot
from dispatch_backend.app.models.catalog_enums import DriverStatus, VehicleStatus
from dispatch_backend.app.models.driver import Driver
from dispatch_backend.app.models.product import Product
from dispatch_backend.app.models.team import Team
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle


@dataclass(frozen=True)
class DriverView:
    """Driver flattened with team and supervisor for selection lists."""
    id: int
    first_name: str
    last_name: str
    national_id: str
    license_expiry: object
    status: DriverStatus
    version: int
    team_id: Optional[int]
    team_name: Optional[str]
    supervisor_id: Optional[int]
    supervisor_name: Optional[str]


class CatalogProvider:

    @staticmethod
    async def load_snapshot(
        db: AsyncSession,
        vehicle_id: int,
        driver_id: int,
        product_ids: Iterable[int],
    ) -> CatalogSnapshot:
        """
        Load every catalog entity a trip-opening request references.

        Reads run sequentially on one session and are joined into a single
        snapshot before any validation happens.
        """
        snapshot = CatalogSnapshot()

        vehicle = (await db.execute(
            select(Vehicle).where(Vehicle.id == vehicle_id)
        )).scalar_one_or_none()
        if vehicle is not None:
            snapshot.vehicles[vehicle.id] = vehicle

        driver = (await db.execute(
            select(Driver).where(Driver.id == driver_id)
        )).scalar_one_or_none()
        if driver is not None:
            snapshot.drivers[driver.id] = driver
            if driver.team_id is not None:
                team = (await db.execute(
                    select(Team).where(Team.id == driver.team_id)
                )).scalar_one_or_none()
                if team is not None:
                    snapshot.teams[team.id] = team

        ids = set(product_ids)
        if ids:
            products = (await db.execute(
                select(Product).where(Product.id.in_(ids))
            )).scalars().all()
            snapshot.products = {product.id: product for product in products}

        return snapshot

    @staticmethod
    async def product_names(db: AsyncSession, product_ids: Iterable[int]) -> dict[int, str]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = await db.execute(select(Product.id, Product.name).where(Product.id.in_(ids)))
        return {row.id: row.name for row in rows}

    @staticmethod
    async def list_vehicles(db: AsyncSession, available_only: bool = False) -> List[Vehicle]:
        query = select(Vehicle).order_by(Vehicle.plate)
        if available_only:
            query = query.where(Vehicle.status == VehicleStatus.AVAILABLE)
        else:
            query = query.where(Vehicle.status != VehicleStatus.RETIRED)
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def list_teams(db: AsyncSession) -> List[Team]:
        return list((await db.execute(select(Team).order_by(Team.name))).scalars().all())

    @staticmethod
    async def list_drivers(db: AsyncSession, available_only: bool = False) -> List[DriverView]:
        """
        Drivers with team name and the supervisor derived from the team.

        `available_only` keeps drivers that can open a trip right now:
        AVAILABLE and assigned to a team.
        """
        query = (
            select(Driver, Team, User)
            .select_from(Driver)
            .outerjoin(Team, Team.id == Driver.team_id)
            .outerjoin(User, User.id == Team.supervisor_id)
            .order_by(Driver.last_name, Driver.first_name)
        )
        if available_only:
            query = query.where(
                Driver.status == DriverStatus.AVAILABLE,
                Driver.team_id.is_not(None),
            )
        else:
            query = query.where(Driver.status != DriverStatus.RETIRED)

        rows = (await db.execute(query)).all()
        return [
            DriverView(
                id=driver.id,
                first_name=driver.first_name,
                last_name=driver.last_name,
                national_id=driver.national_id,
                license_expiry=driver.license_expiry,
                status=driver.status,
                version=driver.version,
                team_id=driver.team_id,
                team_name=team.name if team else None,
                supervisor_id=team.supervisor_id if team else None,
                supervisor_name=supervisor.full_name if supervisor else None,
            )
            for driver, team, supervisor in rows
        ]

    @staticmethod
    async def list_products(db: AsyncSession, include_inactive: bool = False) -> List[Product]:
        query = select(Product).order_by(Product.name)
        if not include_inactive:
            query = query.where(Product.is_active.is_(True))
        return list((await db.execute(query)).scalars().all())
