"""Container API endpoints. Admin only."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from shiptrack.api.deps import DB, AdminPrincipal, TrackingClient, require_admin
from shiptrack.core.exceptions import NotFoundError
from shiptrack.models.container import ContainerStatus
from shiptrack.schemas.container import (
    ContainerCreate,
    ContainerUpdate,
    ContainerResponse,
    ContainerDetailResponse,
    ContainerListResponse,
    ContainerLookupResponse,
    ContainerTrackingEventCreate,
    ContainerTrackingEventResponse,
    ContainerInvoiceCreate,
    ContainerInvoiceResponse,
    ContainerInvoiceListResponse,
    InvoiceTotals,
)
from shiptrack.schemas.shipment import ShipmentResponse
from shiptrack.services.container_service import ContainerService
from shiptrack.services.shipment_service import ShipmentService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("", response_model=ContainerListResponse)
async def list_containers(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[ContainerStatus] = None,
    search: Optional[str] = None,
    active_only: bool = False,
):
    """
    List containers.

    active_only returns containers in a loadable status with a free slot.
    When set, status and search are ignored.
    """
    service = ContainerService(db)
    containers, total = await service.list_containers(
        status=status,
        search=search,
        active_only=active_only,
        page=page,
        size=size,
    )
    return ContainerListResponse(
        items=[ContainerResponse.model_validate(c) for c in containers],
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size,
    )


@router.post("", response_model=ContainerResponse, status_code=status.HTTP_201_CREATED)
async def create_container(
    data: ContainerCreate,
    db: DB,
    principal: AdminPrincipal,
):
    service = ContainerService(db)
    container = await service.create_container(data, principal)
    return ContainerResponse.model_validate(container)


@router.get("/tracking/lookup", response_model=ContainerLookupResponse)
async def lookup_container_tracking(
    tracking_client: TrackingClient,
    container_number: str = Query(..., min_length=4),
):
    """Ask the shipping line for live voyage details of a container number."""
    number = container_number.strip().upper()
    tracking_data = await tracking_client.lookup_container(number)
    if tracking_data is None:
        raise NotFoundError("Tracking data for container", number)
    return ContainerLookupResponse(
        message="Tracking data retrieved successfully",
        tracking_data=tracking_data,
    )


@router.get("/{container_id}", response_model=ContainerDetailResponse)
async def get_container(
    container_id: UUID,
    db: DB,
):
    """Get a container with its shipments, invoices and tracking history."""
    service = ContainerService(db)
    container = await service.get_container(container_id)
    return ContainerDetailResponse.model_validate(container)


@router.put("/{container_id}", response_model=ContainerResponse)
async def update_container(
    container_id: UUID,
    data: ContainerUpdate,
    db: DB,
    principal: AdminPrincipal,
):
    service = ContainerService(db)
    container = await service.update_container(container_id, data, principal)
    return ContainerResponse.model_validate(container)


@router.delete("/{container_id}")
async def delete_container(
    container_id: UUID,
    db: DB,
    principal: AdminPrincipal,
):
    """Delete a container. Loaded shipments are detached, not deleted."""
    service = ContainerService(db)
    await service.delete_container(container_id, principal)
    return {"message": "Container deleted successfully"}


# ==================== SHIPMENTS ====================

@router.post("/{container_id}/shipments/{shipment_id}", response_model=ShipmentResponse)
async def attach_shipment(
    container_id: UUID,
    shipment_id: UUID,
    db: DB,
    principal: AdminPrincipal,
):
    """
    Load a shipment into this container.

    A shipment already in another container is moved. Returns 409 when
    the container is full.
    """
    service = ShipmentService(db)
    shipment = await service.attach_to_container(shipment_id, container_id, principal)
    return ShipmentResponse.model_validate(shipment)


# ==================== TRACKING ====================

@router.get("/{container_id}/tracking", response_model=List[ContainerTrackingEventResponse])
async def list_container_tracking(
    container_id: UUID,
    db: DB,
    limit: int = Query(50, ge=1, le=500),
):
    service = ContainerService(db)
    events = await service.list_tracking_events(container_id, limit=limit)
    return [ContainerTrackingEventResponse.model_validate(e) for e in events]


@router.post(
    "/{container_id}/tracking",
    response_model=ContainerTrackingEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_container_tracking_event(
    container_id: UUID,
    data: ContainerTrackingEventCreate,
    db: DB,
    principal: AdminPrincipal,
):
    service = ContainerService(db)
    event = await service.add_tracking_event(container_id, data, principal)
    return ContainerTrackingEventResponse.model_validate(event)


# ==================== INVOICES ====================

@router.get("/{container_id}/invoices", response_model=ContainerInvoiceListResponse)
async def list_container_invoices(
    container_id: UUID,
    db: DB,
):
    service = ContainerService(db)
    invoices, totals = await service.list_invoices(container_id)
    return ContainerInvoiceListResponse(
        items=[ContainerInvoiceResponse.model_validate(i) for i in invoices],
        totals=InvoiceTotals(**totals),
    )


@router.post(
    "/{container_id}/invoices",
    response_model=ContainerInvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_container_invoice(
    container_id: UUID,
    data: ContainerInvoiceCreate,
    db: DB,
    principal: AdminPrincipal,
):
    service = ContainerService(db)
    invoice = await service.add_invoice(container_id, data, principal)
    return ContainerInvoiceResponse.model_validate(invoice)
