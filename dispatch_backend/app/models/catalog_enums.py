"""
Vehicle and driver lifecycle enumerations.
"""

import enum


class VehicleStatus(str, enum.Enum):
    """Vehicle status enumeration."""
    AVAILABLE = "AVAILABLE"
    ON_TRIP = "ON_TRIP"  # Held by an IN_PROGRESS trip
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"  # Terminal


class DriverStatus(str, enum.Enum):
    """Driver availability enumeration."""
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"  # Driving an IN_PROGRESS trip
    LICENSE_EXPIRED = "LICENSE_EXPIRED"
    RETIRED = "RETIRED"  # Terminal


class LockedResource(str, enum.Enum):
    """Resources that can be held by an IN_PROGRESS trip."""
    VEHICLE = "VEHICLE"
    DRIVER = "DRIVER"
