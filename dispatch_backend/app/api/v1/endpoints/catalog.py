"""
Catalog API Endpoints.

Master data that gates trip eligibility: vehicles, drivers, teams,
supervisors and products with their price tiers.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.schemas.catalog import (
    VehicleCreate, VehicleUpdate, VehicleStatusUpdate, VehicleResponse,
    SupervisorCreate, SupervisorResponse,
    TeamCreate, TeamSupervisorUpdate, TeamResponse,
    DriverCreate, DriverTeamUpdate, DriverStatusUpdate, DriverLicenseUpdate, DriverResponse, DriverListItem,
    ProductCreate, ProductResponse, PriceTierIn, PriceTierUpdate, PriceTierResponse,
)
from dispatch_backend.app.services.catalog import CatalogProvider
from dispatch_backend.app.services.master_data import MasterDataService

router = APIRouter(prefix="/catalog", tags=["Catalog"])


# --- Vehicles ---

@router.post("/vehicles", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def create_vehicle(request: VehicleCreate, db: AsyncSession = Depends(get_db)):
    """Register a vehicle. Plates are normalized to uppercase and must be unique."""
    return await MasterDataService.create_vehicle(db, request.plate, request.model)


@router.get("/vehicles", response_model=List[VehicleResponse])
async def list_vehicles(
    available: bool = Query(False, description="Only vehicles that can start a trip"),
    db: AsyncSession = Depends(get_db)
):
    return await CatalogProvider.list_vehicles(db, available_only=available)


@router.patch("/vehicles/{vehicle_id}", response_model=VehicleResponse)
async def update_vehicle(
    request: VehicleUpdate,
    vehicle_id: int = Path(..., description="Vehicle ID"),
    db: AsyncSession = Depends(get_db)
):
    """Edit plate or model. The plate stays unique."""
    return await MasterDataService.update_vehicle(
        db, vehicle_id, request.plate, request.model, request.expected_version
    )


@router.patch("/vehicles/{vehicle_id}/status", response_model=VehicleResponse)
async def change_vehicle_status(
    request: VehicleStatusUpdate,
    vehicle_id: int = Path(..., description="Vehicle ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Operator status change.

    Allowed: AVAILABLE <-> MAINTENANCE, any non-retired state -> RETIRED.
    ON_TRIP is managed by the trip lifecycle only.
    """
    return await MasterDataService.change_vehicle_status(
        db, vehicle_id, request.status, request.expected_version
    )


# --- Supervisors and teams ---

@router.post("/supervisors", response_model=SupervisorResponse, status_code=status.HTTP_201_CREATED)
async def create_supervisor(request: SupervisorCreate, db: AsyncSession = Depends(get_db)):
    return await MasterDataService.create_supervisor(
        db, request.email, request.username, request.full_name, request.role
    )


@router.get("/teams", response_model=List[TeamResponse])
async def list_teams(db: AsyncSession = Depends(get_db)):
    return await CatalogProvider.list_teams(db)


@router.post("/teams", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(request: TeamCreate, db: AsyncSession = Depends(get_db)):
    return await MasterDataService.create_team(db, request.name, request.supervisor_id)


@router.patch("/teams/{team_id}/supervisor", response_model=TeamResponse)
async def change_team_supervisor(
    request: TeamSupervisorUpdate,
    team_id: int = Path(..., description="Team ID"),
    db: AsyncSession = Depends(get_db)
):
    """Reassign a team. Open trips keep their original supervisor."""
    return await MasterDataService.change_team_supervisor(db, team_id, request.supervisor_id)


# --- Drivers ---

@router.post("/drivers", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def create_driver(request: DriverCreate, db: AsyncSession = Depends(get_db)):
    return await MasterDataService.create_driver(
        db,
        request.first_name,
        request.last_name,
        request.national_id,
        request.license_expiry,
        request.team_id,
    )


@router.get("/drivers", response_model=List[DriverListItem])
async def list_drivers(
    available: bool = Query(False, description="Only drivers that can start a trip"),
    db: AsyncSession = Depends(get_db)
):
    """Drivers with team and derived supervisor."""
    drivers = await CatalogProvider.list_drivers(db, available_only=available)
    return [DriverListItem.model_validate(driver, from_attributes=True) for driver in drivers]


@router.patch("/drivers/{driver_id}/team", response_model=DriverResponse)
async def assign_driver_team(
    request: DriverTeamUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    return await MasterDataService.assign_driver_team(
        db, driver_id, request.team_id, request.expected_version
    )


@router.patch("/drivers/{driver_id}/status", response_model=DriverResponse)
async def change_driver_status(
    request: DriverStatusUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Operator status change.

    Allowed: AVAILABLE <-> LICENSE_EXPIRED, any non-retired state -> RETIRED.
    BUSY is managed by the trip lifecycle only.
    """
    return await MasterDataService.change_driver_status(
        db, driver_id, request.status, request.expected_version
    )


@router.patch("/drivers/{driver_id}/license", response_model=DriverResponse)
async def renew_driver_license(
    request: DriverLicenseUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    db: AsyncSession = Depends(get_db)
):
    """Set a new future license expiry. A LICENSE_EXPIRED driver becomes AVAILABLE again."""
    return await MasterDataService.renew_driver_license(
        db, driver_id, request.license_expiry, request.expected_version
    )


# --- Products ---

@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(request: ProductCreate, db: AsyncSession = Depends(get_db)):
    """Create a product with at least one price tier."""
    return await MasterDataService.create_product(
        db, request.name, [(price.label, price.value) for price in request.prices]
    )


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db)
):
    return await CatalogProvider.list_products(db, include_inactive=include_inactive)


@router.post("/products/{product_id}/prices", response_model=PriceTierResponse, status_code=status.HTTP_201_CREATED)
async def add_price_tier(
    request: PriceTierIn,
    product_id: int = Path(..., description="Product ID"),
    db: AsyncSession = Depends(get_db)
):
    """Add a price tier. Existing trips keep the prices they were opened with."""
    return await MasterDataService.add_price_tier(db, product_id, request.label, request.value)


@router.patch("/prices/{price_tier_id}", response_model=PriceTierResponse)
async def update_price_tier(
    request: PriceTierUpdate,
    price_tier_id: int = Path(..., description="Price tier ID"),
    db: AsyncSession = Depends(get_db)
):
    """Relabel or reprice a tier. Open and finished trips keep the price they were opened with."""
    return await MasterDataService.update_price_tier(db, price_tier_id, request.label, request.value)


@router.delete("/prices/{price_tier_id}", response_model=ProductResponse)
async def remove_price_tier(
    price_tier_id: int = Path(..., description="Price tier ID"),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw a tier from new trips. Returns the product with its remaining tiers."""
    return await MasterDataService.remove_price_tier(db, price_tier_id)


@router.delete("/products/{product_id}", response_model=ProductResponse)
async def deactivate_product(
    product_id: int = Path(..., description="Product ID"),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete: the product can no longer be loaded onto new trips."""
    return await MasterDataService.deactivate_product(db, product_id)


@router.post("/products/{product_id}/reactivate", response_model=ProductResponse)
async def reactivate_product(
    product_id: int = Path(..., description="Product ID"),
    db: AsyncSession = Depends(get_db)
):
    return await MasterDataService.reactivate_product(db, product_id)
