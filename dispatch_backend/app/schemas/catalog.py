"""
Catalog schemas.

Master data: vehicles, drivers, teams, supervisors and products.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import List, Optional
from datetime import date
from decimal import Decimal

from dispatch_backend.app.models.catalog_enums import DriverStatus, VehicleStatus
from dispatch_backend.app.models.enums import UserRole


# --- Vehicles ---

class VehicleCreate(BaseModel):
    plate: str = Field(..., min_length=1, max_length=20)
    model: str = Field(..., min_length=2, max_length=50)


class VehicleUpdate(BaseModel):
    plate: Optional[str] = Field(None, min_length=1, max_length=20)
    model: Optional[str] = Field(None, min_length=2, max_length=50)
    expected_version: Optional[int] = None


class VehicleStatusUpdate(BaseModel):
    status: VehicleStatus
    expected_version: Optional[int] = None


class VehicleResponse(BaseModel):
    id: int
    plate: str
    model: str
    status: VehicleStatus
    version: int

    class Config:
        from_attributes = True


# --- Supervisors and teams ---

class SupervisorCreate(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100)
    full_name: str = Field(..., min_length=1, max_length=150)
    role: UserRole = UserRole.SUPERVISOR


class SupervisorResponse(BaseModel):
    id: int
    email: str
    username: str
    full_name: str
    role: UserRole
    is_active: bool

    class Config:
        from_attributes = True


class TeamCreate(BaseModel):
    name: str
    supervisor_id: int


class TeamSupervisorUpdate(BaseModel):
    supervisor_id: int


class TeamResponse(BaseModel):
    id: int
    name: str
    supervisor_id: int

    class Config:
        from_attributes = True


# --- Drivers ---

class DriverCreate(BaseModel):
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    national_id: str
    license_expiry: date
    team_id: Optional[int] = None


class DriverTeamUpdate(BaseModel):
    team_id: Optional[int] = None
    expected_version: Optional[int] = None


class DriverStatusUpdate(BaseModel):
    status: DriverStatus
    expected_version: Optional[int] = None


class DriverLicenseUpdate(BaseModel):
    license_expiry: date
    expected_version: Optional[int] = None


class DriverResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    national_id: str
    license_expiry: date
    status: DriverStatus
    version: int
    team_id: Optional[int]

    class Config:
        from_attributes = True


class DriverListItem(DriverResponse):
    """Driver with the supervisor derived from the team."""
    team_name: Optional[str] = None
    supervisor_id: Optional[int] = None
    supervisor_name: Optional[str] = None


# --- Products ---

class PriceTierIn(BaseModel):
    label: str = Field(..., min_length=2, max_length=30)
    value: Decimal


class PriceTierUpdate(BaseModel):
    """Relabel or reprice a tier; omitted fields are unchanged."""
    label: Optional[str] = Field(None, min_length=2, max_length=30)
    value: Optional[Decimal] = None


class PriceTierResponse(BaseModel):
    id: int
    label: str
    value: Decimal

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    prices: List[PriceTierIn] = Field(default_factory=list)


class ProductResponse(BaseModel):
    id: int
    name: str
    is_active: bool
    prices: List[PriceTierResponse] = Field(default_factory=list, validation_alias="active_prices")

    class Config:
        from_attributes = True
