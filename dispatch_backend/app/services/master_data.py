"""
Master data service.

Registers and updates vehicles, drivers, teams, supervisors and products.
These entities gate trip eligibility; the trip lifecycle itself moves
vehicles and drivers in and out of ON_TRIP / BUSY.

Every change is flushed together with its audit row and committed once.
"""

from decimal import Decimal
from typing import Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from dispatch_backend.app.core.clock import utc_today
from dispatch_backend.app.core.exceptions import (
    CatalogValidationError,
    ConcurrentModificationError,
    DuplicatePlateError,
    ResourceNotFoundError,
)
from dispatch_backend.app.core.logging_config import get_logger
from dispatch_backend.app.domain.catalog import rules
from dispatch_backend.app.models.catalog_enums import DriverStatus, VehicleStatus
from dispatch_backend.app.models.driver import Driver
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.product import Product, ProductPrice
from dispatch_backend.app.models.team import Team
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.services.audit import log_event, AuditAction

logger = get_logger("master_data")

SUPERVISING_ROLES = (UserRole.SUPERVISOR, UserRole.ADMIN)


async def _get_or_404(db: AsyncSession, model, entity_id: int, label: str):
    entity = (await db.execute(select(model).where(model.id == entity_id))).scalar_one_or_none()
    if entity is None:
        raise ResourceNotFoundError(label, entity_id)
    return entity


def _check_version(entity, expected_version: Optional[int], resource: str) -> None:
    if expected_version is not None and entity.version != expected_version:
        raise ConcurrentModificationError(
            resource, entity.id, f"at version {entity.version}, expected {expected_version}"
        )


async def _flush_versioned(db: AsyncSession, resource: str, resource_id: int) -> None:
    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        raise ConcurrentModificationError(resource, resource_id)


async def _ensure_unique_plate(db: AsyncSession, plate: str, vehicle_id: Optional[int] = None) -> None:
    query = select(Vehicle.id).where(Vehicle.plate == plate)
    if vehicle_id is not None:
        query = query.where(Vehicle.id != vehicle_id)
    if (await db.execute(query)).first():
        raise DuplicatePlateError(plate)


async def _get_active_tier(db: AsyncSession, price_tier_id: int) -> ProductPrice:
    tier = await _get_or_404(db, ProductPrice, price_tier_id, "Price tier")
    if not tier.is_active:
        raise ResourceNotFoundError("Price tier", price_tier_id)
    return tier


class MasterDataService:

    # --- Supervisors ---

    @staticmethod
    async def create_supervisor(
        db: AsyncSession, email: str, username: str, full_name: str, role: UserRole = UserRole.SUPERVISOR
    ) -> User:
        if role not in SUPERVISING_ROLES:
            raise CatalogValidationError("role", "Supervisors must have role SUPERVISOR or ADMIN", role.value)

        existing = (await db.execute(
            select(User.id).where((User.username == username) | (User.email == email))
        )).first()
        if existing:
            raise CatalogValidationError("username", "Username or email already registered", username)

        user = User(email=email, username=username, full_name=full_name, role=role, is_active=True)
        db.add(user)
        await db.flush()

        await log_event(db, AuditAction.SUPERVISOR_CREATED, "user", user.id, metadata={"username": username})
        await db.commit()
        await db.refresh(user)
        return user

    # --- Vehicles ---

    @staticmethod
    async def create_vehicle(db: AsyncSession, plate: str, model: str) -> Vehicle:
        plate = rules.normalize_plate(plate)
        model = rules.validate_text("model", model, 2, 50)
        await _ensure_unique_plate(db, plate)

        vehicle = Vehicle(plate=plate, model=model, status=VehicleStatus.AVAILABLE)
        db.add(vehicle)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise DuplicatePlateError(plate)

        await log_event(db, AuditAction.VEHICLE_CREATED, "vehicle", vehicle.id, metadata={"plate": plate})
        await db.commit()
        await db.refresh(vehicle)
        return vehicle

    @staticmethod
    async def update_vehicle(
        db: AsyncSession,
        vehicle_id: int,
        plate: Optional[str] = None,
        model: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Vehicle:
        """Edit plate and/or model. Status is changed through its own operation."""
        vehicle = await _get_or_404(db, Vehicle, vehicle_id, "Vehicle")
        _check_version(vehicle, expected_version, "vehicle")

        changes = {}
        if plate is not None:
            plate = rules.normalize_plate(plate)
            if plate != vehicle.plate:
                await _ensure_unique_plate(db, plate, vehicle_id)
                changes["plate"] = {"from": vehicle.plate, "to": plate}
                vehicle.plate = plate
        if model is not None:
            model = rules.validate_text("model", model, 2, 50)
            if model != vehicle.model:
                changes["model"] = {"from": vehicle.model, "to": model}
                vehicle.model = model

        if not changes:
            return vehicle

        try:
            await _flush_versioned(db, "vehicle", vehicle_id)
        except IntegrityError:
            await db.rollback()
            raise DuplicatePlateError(plate)

        await log_event(db, AuditAction.VEHICLE_UPDATED, "vehicle", vehicle_id, metadata=changes)
        await db.commit()
        return vehicle

    @staticmethod
    async def change_vehicle_status(
        db: AsyncSession,
        vehicle_id: int,
        target: VehicleStatus,
        expected_version: Optional[int] = None,
    ) -> Vehicle:
        """Operator transition: maintenance, back to service, or retirement."""
        vehicle = await _get_or_404(db, Vehicle, vehicle_id, "Vehicle")
        _check_version(vehicle, expected_version, "vehicle")

        previous = vehicle.status
        rules.transition_vehicle(vehicle, target)
        await _flush_versioned(db, "vehicle", vehicle_id)

        await log_event(
            db, AuditAction.VEHICLE_STATUS_CHANGED, "vehicle", vehicle_id,
            metadata={"from": previous.value, "to": target.value, "version": vehicle.version},
        )
        await db.commit()

        logger.info(
            "Vehicle status changed",
            extra={"vehicle_id": vehicle_id, "from": previous.value, "to": target.value},
        )
        return vehicle

    # --- Teams ---

    @staticmethod
    async def _get_supervisor(db: AsyncSession, supervisor_id: int) -> User:
        user = await _get_or_404(db, User, supervisor_id, "Supervisor")
        if not user.is_active or user.role not in SUPERVISING_ROLES:
            raise CatalogValidationError(
                "supervisor_id", "Supervisor must be an active SUPERVISOR or ADMIN user", supervisor_id
            )
        return user

    @staticmethod
    async def create_team(db: AsyncSession, name: str, supervisor_id: int) -> Team:
        name = rules.validate_team_name(name)
        await MasterDataService._get_supervisor(db, supervisor_id)

        existing = (await db.execute(select(Team.id).where(Team.name == name))).first()
        if existing:
            raise CatalogValidationError("name", "Team name already in use", name)

        team = Team(name=name, supervisor_id=supervisor_id)
        db.add(team)
        await db.flush()

        await log_event(
            db, AuditAction.TEAM_CREATED, "team", team.id,
            metadata={"name": name, "supervisor_id": supervisor_id},
        )
        await db.commit()
        await db.refresh(team)
        return team

    @staticmethod
    async def change_team_supervisor(db: AsyncSession, team_id: int, supervisor_id: int) -> Team:
        """
        Reassign a team's supervisor.

        Trips keep the supervisor they were opened with.
        """
        team = await _get_or_404(db, Team, team_id, "Team")
        await MasterDataService._get_supervisor(db, supervisor_id)

        previous = team.supervisor_id
        team.supervisor_id = supervisor_id
        await log_event(
            db, AuditAction.TEAM_SUPERVISOR_CHANGED, "team", team_id,
            metadata={"from": previous, "to": supervisor_id},
        )
        await db.commit()
        await db.refresh(team)
        return team

    # --- Drivers ---

    @staticmethod
    async def create_driver(
        db: AsyncSession,
        first_name: str,
        last_name: str,
        national_id: str,
        license_expiry,
        team_id: Optional[int] = None,
    ) -> Driver:
        first_name = rules.validate_text("first_name", first_name, 2, 50)
        last_name = rules.validate_text("last_name", last_name, 2, 50)
        national_id = rules.validate_national_id(national_id)
        rules.validate_license_expiry(license_expiry, utc_today())
        if team_id is not None:
            await _get_or_404(db, Team, team_id, "Team")

        existing = (await db.execute(select(Driver.id).where(Driver.national_id == national_id))).first()
        if existing:
            raise CatalogValidationError("national_id", "A driver with this national ID exists", national_id)

        driver = Driver(
            first_name=first_name,
            last_name=last_name,
            national_id=national_id,
            license_expiry=license_expiry,
            team_id=team_id,
            status=DriverStatus.AVAILABLE,
        )
        db.add(driver)
        await db.flush()

        await log_event(
            db, AuditAction.DRIVER_CREATED, "driver", driver.id,
            metadata={"national_id": national_id, "team_id": team_id},
        )
        await db.commit()
        await db.refresh(driver)
        return driver

    @staticmethod
    async def assign_driver_team(
        db: AsyncSession,
        driver_id: int,
        team_id: Optional[int],
        expected_version: Optional[int] = None,
    ) -> Driver:
        driver = await _get_or_404(db, Driver, driver_id, "Driver")
        _check_version(driver, expected_version, "driver")
        if team_id is not None:
            await _get_or_404(db, Team, team_id, "Team")

        previous = driver.team_id
        driver.team_id = team_id
        await _flush_versioned(db, "driver", driver_id)

        await log_event(
            db, AuditAction.DRIVER_TEAM_CHANGED, "driver", driver_id,
            metadata={"from": previous, "to": team_id},
        )
        await db.commit()
        return driver

    @staticmethod
    async def change_driver_status(
        db: AsyncSession,
        driver_id: int,
        target: DriverStatus,
        expected_version: Optional[int] = None,
    ) -> Driver:
        driver = await _get_or_404(db, Driver, driver_id, "Driver")
        _check_version(driver, expected_version, "driver")

        previous = driver.status
        rules.transition_driver(driver, target)
        await _flush_versioned(db, "driver", driver_id)

        await log_event(
            db, AuditAction.DRIVER_STATUS_CHANGED, "driver", driver_id,
            metadata={"from": previous.value, "to": target.value, "version": driver.version},
        )
        await db.commit()

        logger.info(
            "Driver status changed",
            extra={"driver_id": driver_id, "from": previous.value, "to": target.value},
        )
        return driver

    @staticmethod
    async def renew_driver_license(
        db: AsyncSession,
        driver_id: int,
        license_expiry,
        expected_version: Optional[int] = None,
    ) -> Driver:
        """Set a new future expiry; a LICENSE_EXPIRED driver becomes AVAILABLE."""
        driver = await _get_or_404(db, Driver, driver_id, "Driver")
        _check_version(driver, expected_version, "driver")
        rules.validate_license_expiry(license_expiry, utc_today())

        driver.license_expiry = license_expiry
        if driver.status == DriverStatus.LICENSE_EXPIRED:
            rules.transition_driver(driver, DriverStatus.AVAILABLE)
        await _flush_versioned(db, "driver", driver_id)

        await log_event(
            db, AuditAction.DRIVER_LICENSE_RENEWED, "driver", driver_id,
            metadata={"license_expiry": license_expiry.isoformat()},
        )
        await db.commit()
        return driver

    # --- Products ---

    @staticmethod
    async def create_product(
        db: AsyncSession, name: str, prices: Iterable[Tuple[str, Decimal]]
    ) -> Product:
        name = rules.validate_text("name", name, 2, 100)
        prices = list(prices)
        if not prices:
            raise CatalogValidationError("prices", "A product needs at least one price tier")

        product = Product(name=name, is_active=True)
        for label, value in prices:
            product.prices.append(_new_price_tier(label, value))
        db.add(product)
        await db.flush()

        await log_event(
            db, AuditAction.PRODUCT_CREATED, "product", product.id,
            metadata={"name": product.name, "tiers": [p.label for p in product.prices]},
        )
        await db.commit()
        return product

    @staticmethod
    async def add_price_tier(db: AsyncSession, product_id: int, label: str, value: Decimal) -> ProductPrice:
        product = await _get_or_404(db, Product, product_id, "Product")
        tier = _new_price_tier(label, value)
        product.prices.append(tier)
        await db.flush()

        await log_event(
            db, AuditAction.PRICE_TIER_ADDED, "product", product_id,
            metadata={"price_tier_id": tier.id, "label": tier.label, "value": str(tier.value)},
        )
        await db.commit()
        return tier

    @staticmethod
    async def update_price_tier(
        db: AsyncSession,
        price_tier_id: int,
        label: Optional[str] = None,
        value: Optional[Decimal] = None,
    ) -> ProductPrice:
        """
        Relabel or reprice a tier.

        Trips already opened keep the unit price they copied; only trips
        opened afterwards see the new value.
        """
        tier = await _get_active_tier(db, price_tier_id)

        changes = {}
        if label is not None:
            label = rules.validate_text("label", label, 2, 30)
            if label != tier.label:
                changes["label"] = {"from": tier.label, "to": label}
                tier.label = label
        if value is not None:
            value = rules.validate_price(value)
            if value != tier.value:
                changes["value"] = {"from": str(tier.value), "to": str(value)}
                tier.value = value

        if not changes:
            return tier

        await db.flush()
        await log_event(
            db, AuditAction.PRICE_TIER_UPDATED, "product", tier.product_id,
            metadata={"price_tier_id": price_tier_id, **changes},
        )
        await db.commit()
        return tier

    @staticmethod
    async def remove_price_tier(db: AsyncSession, price_tier_id: int) -> Product:
        """Withdraw a tier from new trips. The last active tier of a product cannot be removed."""
        tier = await _get_active_tier(db, price_tier_id)
        product = await _get_or_404(db, Product, tier.product_id, "Product")
        if len(product.active_prices) <= 1:
            raise CatalogValidationError(
                "prices", "A product needs at least one price tier", price_tier_id
            )

        tier.is_active = False
        await db.flush()
        await log_event(
            db, AuditAction.PRICE_TIER_REMOVED, "product", product.id,
            metadata={"price_tier_id": price_tier_id, "label": tier.label},
        )
        await db.commit()
        return product

    @staticmethod
    async def deactivate_product(db: AsyncSession, product_id: int) -> Product:
        product = await _get_or_404(db, Product, product_id, "Product")
        rules.deactivate_product(product)

        await log_event(db, AuditAction.PRODUCT_DEACTIVATED, "product", product_id)
        await db.commit()
        return product

    @staticmethod
    async def reactivate_product(db: AsyncSession, product_id: int) -> Product:
        product = await _get_or_404(db, Product, product_id, "Product")
        rules.reactivate_product(product)

        await log_event(db, AuditAction.PRODUCT_REACTIVATED, "product", product_id)
        await db.commit()
        return product


def _new_price_tier(label: str, value) -> ProductPrice:
    return ProductPrice(
        label=rules.validate_text("label", label, 2, 30),
        value=rules.validate_price(value),
        is_active=True,
    )
