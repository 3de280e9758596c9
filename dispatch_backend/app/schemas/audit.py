"""
Audit history schemas.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime


class AuditLogResponse(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: Optional[int]
    actor: Optional[str]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="meta_data")
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditHistoryResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
