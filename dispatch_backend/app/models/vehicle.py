"""
Vehicle database model.

Vehicles carry cargo on trips and move through AVAILABLE / ON_TRIP /
MAINTENANCE / RETIRED.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.catalog_enums import VehicleStatus


class Vehicle(Base):
    """
    Vehicle model.

    `version` is the optimistic concurrency counter: every UPDATE is issued
    with the version that was read, and a stale write raises StaleDataError.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    plate = Column(String(10), unique=True, nullable=False, index=True)
    model = Column(String(50), nullable=False)

    status = Column(Enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False, index=True)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate}', status='{self.status.value}')>"
