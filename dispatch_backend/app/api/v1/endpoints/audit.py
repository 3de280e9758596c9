"""
Audit API Endpoints.

Change history of trips and master data, most recent first.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.schemas.audit import AuditHistoryResponse, AuditLogResponse
from dispatch_backend.app.services.audit import get_entity_history

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("/{entity_type}/{entity_id}", response_model=AuditHistoryResponse)
async def get_audit_history(
    entity_type: str = Path(..., pattern="^(trip|vehicle|driver|team|product|user)$"),
    entity_id: int = Path(..., description="Entity ID"),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    logs = await get_entity_history(db, entity_type, entity_id, limit=limit)

    return AuditHistoryResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
