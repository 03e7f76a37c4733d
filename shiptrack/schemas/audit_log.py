from datetime import datetime
from typing import Optional, Any, Dict
import uuid

from shiptrack.schemas.base import BaseResponseSchema, PaginatedResponse


class AuditLogResponse(BaseResponseSchema):
    id: uuid.UUID
    performed_by: str
    action: str
    entity_type: str
    entity_id: Optional[uuid.UUID] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(PaginatedResponse[AuditLogResponse]):
    pass
