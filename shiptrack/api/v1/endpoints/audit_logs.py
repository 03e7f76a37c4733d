"""Audit Logs API endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shiptrack.api.deps import DB, require_admin
from shiptrack.schemas.audit_log import AuditLogResponse, AuditLogListResponse
from shiptrack.services.audit_service import AuditService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    performed_by: Optional[str] = None,
    action: Optional[str] = None,
):
    """
    List audit logs, newest first.

    Filters:
    - entity_type: SHIPMENT or CONTAINER
    - entity_id: a specific shipment or container
    - performed_by: actor id, or "system" for sweeps
    - action: CREATE, UPDATE, DELETE, ATTACH, STATUS_SYNC, ...
    """
    service = AuditService(db)
    logs, total = await service.get_audit_logs(
        entity_type=entity_type,
        entity_id=entity_id,
        performed_by=performed_by,
        action=action,
        page=page,
        size=size,
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size,
    )
