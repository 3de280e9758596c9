"""
Master-data rules for vehicles, drivers, teams and products.

Field rules and lifecycle transitions. The trip lifecycle drives
ON_TRIP / BUSY; operators drive maintenance, retirement and product
activation.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation

from dispatch_backend.app.core.exceptions import CatalogValidationError, InvalidStatusTransitionError
from dispatch_backend.app.models.catalog_enums import DriverStatus, VehicleStatus
from dispatch_backend.app.models.driver import Driver
from dispatch_backend.app.models.product import Product
from dispatch_backend.app.models.vehicle import Vehicle

PLATE_PATTERN = re.compile(r"^[A-Z0-9]{6,10}$")
NATIONAL_ID_PATTERN = re.compile(r"^[0-9]{7,15}$")
TEAM_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_]{3,50}$")

# Numeric(12, 2)
MAX_PRICE = Decimal("9999999999.99")
CENT = Decimal("0.01")

# Transitions an operator may request directly
OPERATOR_VEHICLE_TRANSITIONS = {
    VehicleStatus.AVAILABLE: {VehicleStatus.MAINTENANCE, VehicleStatus.RETIRED},
    VehicleStatus.MAINTENANCE: {VehicleStatus.AVAILABLE, VehicleStatus.RETIRED},
    VehicleStatus.ON_TRIP: {VehicleStatus.RETIRED},
    VehicleStatus.RETIRED: set(),
}

# Transitions performed by the trip lifecycle
TRIP_VEHICLE_TRANSITIONS = {
    VehicleStatus.AVAILABLE: {VehicleStatus.ON_TRIP},
    VehicleStatus.ON_TRIP: {VehicleStatus.AVAILABLE},
}

OPERATOR_DRIVER_TRANSITIONS = {
    DriverStatus.AVAILABLE: {DriverStatus.LICENSE_EXPIRED, DriverStatus.RETIRED},
    DriverStatus.LICENSE_EXPIRED: {DriverStatus.AVAILABLE, DriverStatus.RETIRED},
    DriverStatus.BUSY: {DriverStatus.RETIRED},
    DriverStatus.RETIRED: set(),
}


def normalize_plate(plate: str) -> str:
    value = (plate or "").strip().upper()
    if not PLATE_PATTERN.match(value):
        raise CatalogValidationError(
            "plate", "Plate must be 6 to 10 uppercase letters or digits", plate
        )
    return value


def validate_national_id(national_id: str) -> str:
    value = (national_id or "").strip()
    if not NATIONAL_ID_PATTERN.match(value):
        raise CatalogValidationError(
            "national_id", "National ID must be 7 to 15 digits", national_id
        )
    return value


def validate_text(field: str, value: str, min_length: int, max_length: int) -> str:
    """Strip surrounding whitespace and enforce the length bounds."""
    text = (value or "").strip()
    if not min_length <= len(text) <= max_length:
        raise CatalogValidationError(
            field, f"{field} must be {min_length} to {max_length} characters", value
        )
    return text


def validate_price(value) -> Decimal:
    """
    A price tier value: positive, at most two decimal places, and within
    the column precision. Values are never rounded.
    """
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise CatalogValidationError("value", "Price must be a number", str(value))
    if not price.is_finite() or price <= 0:
        raise CatalogValidationError("value", "Price must be greater than zero", str(value))
    if price > MAX_PRICE:
        raise CatalogValidationError("value", f"Price must not exceed {MAX_PRICE}", str(value))
    if price != price.quantize(CENT):
        raise CatalogValidationError("value", "Price must have at most two decimal places", str(value))
    return price


def validate_license_expiry(expiry: date, today: date) -> date:
    if expiry <= today:
        raise CatalogValidationError(
            "license_expiry", "License expiry must be a future date", expiry.isoformat()
        )
    return expiry


def validate_team_name(name: str) -> str:
    value = (name or "").strip()
    if not TEAM_NAME_PATTERN.match(value):
        raise CatalogValidationError(
            "name",
            "Team name must be 3 to 50 letters, digits, spaces, hyphens or underscores",
            name,
        )
    return value


def transition_vehicle(vehicle: Vehicle, target: VehicleStatus, by_trip: bool = False) -> Vehicle:
    """
    Move a vehicle to `target`, enforcing the lifecycle graph.

    RETIRED is terminal. ON_TRIP is entered and left only by the trip
    lifecycle (`by_trip=True`).
    """
    allowed = (TRIP_VEHICLE_TRANSITIONS if by_trip else OPERATOR_VEHICLE_TRANSITIONS).get(vehicle.status, set())
    if target not in allowed:
        raise InvalidStatusTransitionError("vehicle", vehicle.id, vehicle.status.value, target.value)
    vehicle.status = target
    return vehicle


def transition_driver(driver: Driver, target: DriverStatus, by_trip: bool = False) -> Driver:
    if by_trip:
        allowed = {
            DriverStatus.AVAILABLE: {DriverStatus.BUSY},
            DriverStatus.BUSY: {DriverStatus.AVAILABLE},
        }.get(driver.status, set())
    else:
        allowed = OPERATOR_DRIVER_TRANSITIONS.get(driver.status, set())
    if target not in allowed:
        raise InvalidStatusTransitionError("driver", driver.id, driver.status.value, target.value)
    driver.status = target
    return driver


def deactivate_product(product: Product) -> Product:
    """Soft delete. Price tiers are kept."""
    if not product.is_active:
        raise InvalidStatusTransitionError("product", product.id, "INACTIVE", "INACTIVE")
    product.is_active = False
    return product


def reactivate_product(product: Product) -> Product:
    if product.is_active:
        raise InvalidStatusTransitionError("product", product.id, "ACTIVE", "ACTIVE")
    product.is_active = True
    return product
