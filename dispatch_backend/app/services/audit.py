"""
Audit logging service for trip lifecycle and master-data events.

Every successful state transition leaves one audit row.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from dispatch_backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    # Trip lifecycle
    TRIP_OPENED = "TRIP_OPENED"
    TRIP_CLOSED = "TRIP_CLOSED"

    # Vehicles
    VEHICLE_CREATED = "VEHICLE_CREATED"
    VEHICLE_UPDATED = "VEHICLE_UPDATED"
    VEHICLE_STATUS_CHANGED = "VEHICLE_STATUS_CHANGED"

    # Drivers and teams
    SUPERVISOR_CREATED = "SUPERVISOR_CREATED"
    DRIVER_CREATED = "DRIVER_CREATED"
    DRIVER_TEAM_CHANGED = "DRIVER_TEAM_CHANGED"
    DRIVER_LICENSE_RENEWED = "DRIVER_LICENSE_RENEWED"
    DRIVER_STATUS_CHANGED = "DRIVER_STATUS_CHANGED"
    TEAM_CREATED = "TEAM_CREATED"
    TEAM_SUPERVISOR_CHANGED = "TEAM_SUPERVISOR_CHANGED"

    # Products
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRICE_TIER_ADDED = "PRICE_TIER_ADDED"
    PRICE_TIER_UPDATED = "PRICE_TIER_UPDATED"
    PRICE_TIER_REMOVED = "PRICE_TIER_REMOVED"
    PRODUCT_DEACTIVATED = "PRODUCT_DEACTIVATED"
    PRODUCT_REACTIVATED = "PRODUCT_REACTIVATED"


async def log_event(
    db: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    actor: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an audit event in the caller's transaction.

    The row is flushed, not committed; it is persisted or discarded together
    with the change it describes.

    Args:
        db: Database session
        action: Action performed (use AuditAction constants)
        entity_type: "trip", "vehicle", "driver", "team", "product", ...
        entity_id: ID of the entity acted upon
        actor: Free-form actor label, None for system actions
        metadata: JSON-serializable context (convert Decimals to str)

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_entity_history(
    db: AsyncSession,
    entity_type: str,
    entity_id: int,
    limit: int = 50
) -> list[AuditLog]:
    """
    Audit history for one entity, most recent first.
    """
    query = select(AuditLog).where(
        AuditLog.entity_type == entity_type,
        AuditLog.entity_id == entity_id,
    ).order_by(desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
