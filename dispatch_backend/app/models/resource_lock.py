"""
Resource Lock database model.

Ensures at most one IN_PROGRESS trip per vehicle and per driver through a
partial unique index on active locks.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, Index, text
from dispatch_backend.app.db.session import Base
from dispatch_backend.app.models.catalog_enums import LockedResource


class ResourceLock(Base):
    """
    Resource Lock model.

    A lock is taken for the vehicle and for the driver when a trip opens and
    released when it closes. Two concurrent openings for the same resource
    cannot both insert an active lock.
    """
    __tablename__ = "resource_locks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    resource_type = Column(Enum(LockedResource), nullable=False)
    resource_id = Column(Integer, nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)

    locked_at = Column(DateTime, nullable=False)
    released_at = Column(DateTime, nullable=True)

    # Unique constraint: only one active lock per resource
    __table_args__ = (
        Index(
            'ix_resource_locks_active',
            'resource_type',
            'resource_id',
            unique=True,
            postgresql_where=text('released_at IS NULL'),
            sqlite_where=text('released_at IS NULL'),
        ),
    )

    def __repr__(self):
        return (
            f"<ResourceLock({self.resource_type.value}={self.resource_id}, "
            f"trip_id={self.trip_id}, active={self.released_at is None})>"
        )
