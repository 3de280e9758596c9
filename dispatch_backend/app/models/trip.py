"""
Trip database model.

A trip is one dispatch cycle of a vehicle and driver carrying priced cargo,
from open (IN_PROGRESS) to reconciliation (FINISHED).
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.trip_enums import TripStatus


class Trip(Base):
    """
    Trip model.

    Vehicle, driver, supervisor and team are captured by reference when the
    trip is opened. `total_revenue` and `finished_at` stay NULL until close.
    Trips are never deleted.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Resources assigned at open time
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False, index=True)
    supervisor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=True, index=True)

    status = Column(Enum(TripStatus), default=TripStatus.IN_PROGRESS, nullable=False, index=True)

    # Naive UTC timestamps
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=True, index=True)

    total_revenue = Column(Numeric(14, 2), nullable=True)

    version = Column(Integer, nullable=False)

    line_items = relationship(
        "TripLineItem",
        order_by="TripLineItem.line_number",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Trip(id={self.id}, vehicle_id={self.vehicle_id}, status='{self.status.value}')>"
