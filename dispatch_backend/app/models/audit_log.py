"""
Audit Log Database Model.

Tracks trip lifecycle transitions and master-data changes.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from dispatch_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - TRIP_OPENED / TRIP_CLOSED
    - VEHICLE_CREATED / VEHICLE_UPDATED / VEHICLE_STATUS_CHANGED
    - SUPERVISOR_CREATED
    - DRIVER_CREATED / DRIVER_TEAM_CHANGED / DRIVER_STATUS_CHANGED / DRIVER_LICENSE_RENEWED
    - TEAM_CREATED / TEAM_SUPERVISOR_CHANGED
    - PRODUCT_CREATED / PRODUCT_DEACTIVATED / PRODUCT_REACTIVATED
    - PRICE_TIER_ADDED / PRICE_TIER_UPDATED / PRICE_TIER_REMOVED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    action = Column(String(100), nullable=False, index=True)

    # Entity the action applies to
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, nullable=True, index=True)

    # Who performed the action (None for system actions)
    actor = Column(String(100), nullable=True)

    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
