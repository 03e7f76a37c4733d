"""Bulk shipment operations API endpoint."""
from fastapi import APIRouter

from shiptrack.api.deps import DB, AdminPrincipal
from shiptrack.schemas.bulk import BulkShipmentRequest, BulkShipmentResponse
from shiptrack.schemas.shipment import ShipmentDetailResponse
from shiptrack.services.bulk_service import BulkAction, BulkShipmentService

router = APIRouter()


@router.post("/shipments", response_model=BulkShipmentResponse)
async def bulk_shipment_operation(
    request: BulkShipmentRequest,
    db: DB,
    principal: AdminPrincipal,
):
    """
    Apply one action to many shipments.

    Unknown ids are skipped; `count` is the number of shipments actually
    affected. `export` returns the shipments with their events instead.
    """
    service = BulkShipmentService(db)
    result = await service.execute(
        action=request.action,
        shipment_ids=request.shipment_ids,
        data=request.data,
        principal=principal,
    )

    if result.action == BulkAction.EXPORT:
        return BulkShipmentResponse(
            message=f"Exported {result.count} shipments",
            action=result.action,
            count=result.count,
            data=[ShipmentDetailResponse.model_validate(s) for s in result.data or []],
        )

    return BulkShipmentResponse(
        message=f"Successfully applied {result.action.value} to {result.count} shipments",
        action=result.action,
        count=result.count,
    )
