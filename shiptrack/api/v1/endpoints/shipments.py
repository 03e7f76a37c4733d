"""Shipment API endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from shiptrack.api.deps import DB, CurrentPrincipal, AdminPrincipal
from shiptrack.models.shipment import ShipmentStatus
from shiptrack.schemas.shipment import (
    ShipmentCreate,
    ShipmentUpdate,
    ShipmentResponse,
    ShipmentDetailResponse,
    ShipmentListResponse,
    ShipmentEventCreate,
    ShipmentEventResponse,
)
from shiptrack.services.shipment_service import ShipmentService

router = APIRouter()


@router.get("", response_model=ShipmentListResponse)
async def list_shipments(
    db: DB,
    principal: CurrentPrincipal,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[ShipmentStatus] = None,
    container_id: Optional[UUID] = None,
    search: Optional[str] = None,
):
    """
    List shipments with pagination.

    Admins see every shipment, other callers only the ones they own.
    """
    service = ShipmentService(db)
    shipments, total = await service.list_shipments(
        principal=principal,
        status=status,
        container_id=container_id,
        search=search,
        page=page,
        size=size,
    )
    return ShipmentListResponse(
        items=[ShipmentResponse.model_validate(s) for s in shipments],
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size,
    )


@router.post("", response_model=ShipmentDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    data: ShipmentCreate,
    db: DB,
    principal: AdminPrincipal,
):
    """Create a shipment with its initial tracking history."""
    service = ShipmentService(db)
    shipment = await service.create_shipment(data, principal)
    return ShipmentDetailResponse.model_validate(shipment)


@router.get("/{shipment_id}", response_model=ShipmentDetailResponse)
async def get_shipment(
    shipment_id: UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    """Get a shipment with its events, newest first."""
    service = ShipmentService(db)
    shipment = await service.get_shipment(shipment_id, principal)
    return ShipmentDetailResponse.model_validate(shipment)


@router.put("/{shipment_id}", response_model=ShipmentDetailResponse)
async def update_shipment(
    shipment_id: UUID,
    data: ShipmentUpdate,
    db: DB,
    principal: AdminPrincipal,
):
    service = ShipmentService(db)
    shipment = await service.update_shipment(shipment_id, data, principal)
    return ShipmentDetailResponse.model_validate(shipment)


@router.delete("/{shipment_id}")
async def delete_shipment(
    shipment_id: UUID,
    db: DB,
    principal: AdminPrincipal,
):
    service = ShipmentService(db)
    await service.delete_shipment(shipment_id, principal)
    return {"message": "Shipment deleted successfully"}


# ==================== EVENTS ====================

@router.get("/{shipment_id}/events", response_model=List[ShipmentEventResponse])
async def list_shipment_events(
    shipment_id: UUID,
    db: DB,
    principal: CurrentPrincipal,
):
    service = ShipmentService(db)
    events = await service.list_events(shipment_id, principal)
    return [ShipmentEventResponse.model_validate(e) for e in events]


@router.post(
    "/{shipment_id}/events",
    response_model=ShipmentEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_shipment_event(
    shipment_id: UUID,
    data: ShipmentEventCreate,
    db: DB,
    principal: CurrentPrincipal,
):
    """
    Add a manual tracking update.

    A status label naming a canonical shipment status also moves the
    shipment to that status.
    """
    service = ShipmentService(db)
    event = await service.add_event(shipment_id, data, principal)
    return ShipmentEventResponse.model_validate(event)


# ==================== CONTAINER ====================

@router.delete("/{shipment_id}/container", response_model=ShipmentResponse)
async def detach_shipment_from_container(
    shipment_id: UUID,
    db: DB,
    principal: AdminPrincipal,
):
    """Remove the shipment from its container, freeing the slot. No-op if not attached."""
    service = ShipmentService(db)
    shipment = await service.detach_from_container(shipment_id, principal)
    return ShipmentResponse.model_validate(shipment)
