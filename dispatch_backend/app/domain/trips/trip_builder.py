"""
Trip Builder (Domain Logic).

Turns a proposed vehicle, driver and cargo manifest into an OpenTripCommand,
or rejects it with the precise rule that failed. Pure: works on an already
loaded CatalogSnapshot and never touches the database.

Check order:
1. Manifest as a whole (empty, quantities, duplicate pairs, products, tiers)
2. Vehicle eligibility
3. Driver eligibility (status, license)
4. Supervisor derivation from the driver's team
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from dispatch_backend.app.core.exceptions import (
    DuplicateCargoLineError,
    EmptyManifestError,
    InactiveProductError,
    InvalidPriceTierError,
    InvalidQuantityError,
    MissingSupervisorError,
    ResourceNotFoundError,
    ResourceUnavailableError,
    UnknownProductError,
)
from dispatch_backend.app.models.catalog_enums import DriverStatus, VehicleStatus
from dispatch_backend.app.models.driver import Driver
from dispatch_backend.app.models.product import Product
from dispatch_backend.app.models.team import Team
from dispatch_backend.app.models.vehicle import Vehicle


@dataclass(frozen=True)
class CargoLine:
    """One requested manifest line."""
    product_id: int
    price_tier_id: int
    opening_quantity: int


@dataclass
class CatalogSnapshot:
    """Catalog entities joined before validation."""
    vehicles: Dict[int, Vehicle] = field(default_factory=dict)
    drivers: Dict[int, Driver] = field(default_factory=dict)
    teams: Dict[int, Team] = field(default_factory=dict)
    products: Dict[int, Product] = field(default_factory=dict)


@dataclass(frozen=True)
class PlannedLine:
    """Validated manifest line with its unit price snapshot."""
    line_number: int
    product_id: int
    product_name: str
    price_tier_id: int
    price_tier_label: str
    opening_quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OpenTripCommand:
    """Everything the trip store needs to open a trip atomically."""
    vehicle_id: int
    vehicle_version: int
    driver_id: int
    driver_version: int
    supervisor_id: int
    team_id: int
    lines: Tuple[PlannedLine, ...]


def derive_supervisor(driver: Driver, teams: Dict[int, Team]) -> int:
    """
    Resolve the supervisor of a driver through the driver's team.

    Raises:
        MissingSupervisorError: driver has no team, or the team is unknown
            or has no supervisor.
    """
    if driver.team_id is None:
        raise MissingSupervisorError(driver.id)

    team = teams.get(driver.team_id)
    if team is None:
        raise MissingSupervisorError(driver.id, reason=f"team {driver.team_id} does not exist")
    if team.supervisor_id is None:
        raise MissingSupervisorError(driver.id, reason=f"team '{team.name}' has no supervisor")

    return team.supervisor_id


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_manifest(
    cargo: Sequence[CargoLine],
    products: Dict[int, Product],
) -> List[PlannedLine]:
    """
    Validate the whole manifest and snapshot unit prices.

    Every line is checked for shape first, then for uniqueness, then against
    the catalog, so a later bad line is never masked by an earlier good one.
    """
    if not cargo:
        raise EmptyManifestError()

    for index, line in enumerate(cargo):
        if not _is_positive_int(line.opening_quantity):
            raise InvalidQuantityError(index, line.opening_quantity)

    seen = set()
    for line in cargo:
        pair = (line.product_id, line.price_tier_id)
        if pair in seen:
            raise DuplicateCargoLineError(line.product_id, line.price_tier_id)
        seen.add(pair)

    planned = []
    for number, line in enumerate(cargo, start=1):
        product = products.get(line.product_id)
        if product is None:
            raise UnknownProductError(line.product_id)
        if not product.is_active:
            raise InactiveProductError(product.id, product.name)

        tier = next((p for p in product.active_prices if p.id == line.price_tier_id), None)
        if tier is None:
            raise InvalidPriceTierError(line.product_id, line.price_tier_id)

        planned.append(PlannedLine(
            line_number=number,
            product_id=product.id,
            product_name=product.name,
            price_tier_id=tier.id,
            price_tier_label=tier.label,
            opening_quantity=line.opening_quantity,
            unit_price=Decimal(tier.value),
        ))

    return planned


def check_vehicle_eligibility(vehicle: Optional[Vehicle], vehicle_id: int) -> Vehicle:
    if vehicle is None:
        raise ResourceNotFoundError("Vehicle", vehicle_id)
    if vehicle.status != VehicleStatus.AVAILABLE:
        raise ResourceUnavailableError("vehicle", vehicle.id, f"status is {vehicle.status.value}")
    return vehicle


def check_driver_eligibility(driver: Optional[Driver], driver_id: int, today: date) -> Driver:
    if driver is None:
        raise ResourceNotFoundError("Driver", driver_id)
    if driver.status != DriverStatus.AVAILABLE:
        raise ResourceUnavailableError("driver", driver.id, f"status is {driver.status.value}")
    if driver.license_expiry <= today:
        raise ResourceUnavailableError(
            "driver", driver.id, f"license expired on {driver.license_expiry.isoformat()}"
        )
    return driver


def build_open_trip(
    vehicle_id: int,
    driver_id: int,
    cargo: Iterable[CargoLine],
    catalog: CatalogSnapshot,
    today: date,
) -> OpenTripCommand:
    """
    Validate a trip-opening request against a catalog snapshot.

    The supervisor is always derived here from the driver's current team;
    callers cannot supply it.
    """
    cargo = list(cargo)
    planned = validate_manifest(cargo, catalog.products)

    vehicle = check_vehicle_eligibility(catalog.vehicles.get(vehicle_id), vehicle_id)
    driver = check_driver_eligibility(catalog.drivers.get(driver_id), driver_id, today)
    supervisor_id = derive_supervisor(driver, catalog.teams)

    return OpenTripCommand(
        vehicle_id=vehicle.id,
        vehicle_version=vehicle.version,
        driver_id=driver.id,
        driver_version=driver.version,
        supervisor_id=supervisor_id,
        team_id=driver.team_id,
        lines=tuple(planned),
    )
