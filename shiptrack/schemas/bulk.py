"""Bulk operation request/response schemas."""
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, Field

from shiptrack.schemas.shipment import ShipmentDetailResponse
from shiptrack.services.bulk_service import BulkAction


class BulkShipmentRequest(BaseModel):
    """
    `data` is action specific and validated by the bulk service:
    updateStatus {status}, updateProgress {progress}, assignUser {user_id},
    updatePaymentStatus {payment_status}, updateLocation {current_location},
    setETA {estimated_delivery}. delete and export take none.
    """
    action: BulkAction
    shipment_ids: List[uuid.UUID] = Field(..., min_length=1)
    data: Dict[str, Any] = {}


class BulkShipmentResponse(BaseModel):
    message: str
    action: BulkAction
    count: int
    data: Optional[List[ShipmentDetailResponse]] = None
