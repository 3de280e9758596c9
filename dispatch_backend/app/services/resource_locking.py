"""
Resource locking service.

Holds vehicles and drivers for the duration of an IN_PROGRESS trip. The
partial unique index on active locks is what closes the race between two
concurrent openings; the status checks in the trip builder are only a
fast path.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from dispatch_backend.app.core.clock import utcnow
from dispatch_backend.app.models.catalog_enums import LockedResource
from dispatch_backend.app.models.resource_lock import ResourceLock


async def create_resource_lock(
    db: AsyncSession,
    resource_type: LockedResource,
    resource_id: int,
    trip_id: int
) -> ResourceLock:
    """
    Take an active lock on a vehicle or driver for a trip.

    Raises:
        IntegrityError: If the resource already has an active lock
    """
    lock = ResourceLock(
        resource_type=resource_type,
        resource_id=resource_id,
        trip_id=trip_id,
        locked_at=utcnow(),
        released_at=None
    )

    db.add(lock)
    await db.flush()  # Will raise IntegrityError if unique index violated

    return lock


async def get_active_lock(
    db: AsyncSession,
    resource_type: LockedResource,
    resource_id: int
) -> ResourceLock | None:
    result = await db.execute(
        select(ResourceLock).where(
            ResourceLock.resource_type == resource_type,
            ResourceLock.resource_id == resource_id,
            ResourceLock.released_at.is_(None)
        )
    )
    return result.scalar_one_or_none()


async def release_trip_locks(
    db: AsyncSession,
    trip_id: int
) -> int:
    """
    Release every active lock held by a trip.

    Returns:
        Number of locks released
    """
    result = await db.execute(
        select(ResourceLock).where(
            ResourceLock.trip_id == trip_id,
            ResourceLock.released_at.is_(None)
        )
    )
    locks = result.scalars().all()

    now = utcnow()
    for lock in locks:
        lock.released_at = now
    await db.flush()

    return len(locks)
