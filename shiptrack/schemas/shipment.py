"""Pydantic schemas for Shipment models."""
from pydantic import Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
import uuid

from shiptrack.core.enum_utils import enum_values, normalize_to_uppercase
from shiptrack.models.shipment import ShipmentStatus, PaymentStatus, DeliveryAlertStatus
from shiptrack.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, PaginatedResponse


VALID_SHIPMENT_STATUSES = set(enum_values(ShipmentStatus))
VALID_PAYMENT_STATUSES = set(enum_values(PaymentStatus))

# Statuses that only make sense once the route is known
ROUTED_STATUSES = (ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED)


# ==================== EVENT SCHEMAS ====================

class ShipmentEventResponse(BaseResponseSchema):
    """Shipment history entry."""
    id: uuid.UUID
    shipment_id: uuid.UUID
    status: str
    location: Optional[str] = None
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    completed: bool
    event_time: datetime
    source: str
    created_by: Optional[str] = None
    created_at: datetime


class ShipmentEventCreate(BaseCreateSchema):
    """Manual tracking update."""
    status: str = Field(..., min_length=1, max_length=100)
    location: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    completed: bool = False
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    event_time: Optional[datetime] = None


class InitialTrackingEvent(BaseCreateSchema):
    """History entry supplied on intake."""
    status: str = Field(..., min_length=1, max_length=100)
    location: Optional[str] = None
    description: Optional[str] = None
    completed: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    event_time: Optional[datetime] = None


# ==================== SHIPMENT SCHEMAS ====================

class ShipmentCreate(BaseCreateSchema):
    """Shipment intake schema."""
    user_id: str = Field(..., min_length=1, max_length=100)
    vehicle_type: str = Field(..., min_length=1, max_length=50)
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = Field(None, ge=1886, le=2100)
    vehicle_vin: Optional[str] = Field(None, max_length=17)
    origin: Optional[str] = None
    destination: Optional[str] = None
    current_location: Optional[str] = None
    tracking_number: Optional[str] = Field(None, max_length=50)
    status: ShipmentStatus = ShipmentStatus.PENDING
    estimated_delivery: Optional[datetime] = None
    progress: int = Field(0, ge=0, le=100)
    price: Optional[float] = Field(None, ge=0)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    auto_status_update: bool = True
    container_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    tracking_events: List[InitialTrackingEvent] = []

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_to_uppercase(v, VALID_SHIPMENT_STATUSES)

    @field_validator("payment_status", mode="before")
    @classmethod
    def _normalize_payment_status(cls, v):
        return normalize_to_uppercase(v, VALID_PAYMENT_STATUSES)

    @field_validator("vehicle_vin")
    @classmethod
    def _normalize_vin(cls, v):
        return v.strip().upper() or None if v else None

    @model_validator(mode="after")
    def _route_required_when_moving(self):
        if self.status in ROUTED_STATUSES:
            for name in ("origin", "destination", "current_location"):
                value = getattr(self, name)
                if not value or len(value.strip()) < 2:
                    raise ValueError(
                        f"{name} is required (at least 2 characters) when status is {self.status.value}"
                    )
        return self


class ShipmentUpdate(BaseUpdateSchema):
    """
    Partial shipment update.

    delivery_alert_status is deliberately absent: it is derived by the
    delivery alert sweep.
    """
    user_id: Optional[str] = Field(None, min_length=1, max_length=100)
    vehicle_type: Optional[str] = Field(None, min_length=1, max_length=50)
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = Field(None, ge=1886, le=2100)
    vehicle_vin: Optional[str] = Field(None, max_length=17)
    origin: Optional[str] = None
    destination: Optional[str] = None
    current_location: Optional[str] = None
    status: Optional[ShipmentStatus] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    price: Optional[float] = Field(None, ge=0)
    payment_status: Optional[PaymentStatus] = None
    auto_status_update: Optional[bool] = None
    container_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_to_uppercase(v, VALID_SHIPMENT_STATUSES)

    @field_validator("payment_status", mode="before")
    @classmethod
    def _normalize_payment_status(cls, v):
        return normalize_to_uppercase(v, VALID_PAYMENT_STATUSES)


class ShipmentResponse(BaseResponseSchema):
    """Shipment response schema."""
    id: uuid.UUID
    tracking_number: str
    user_id: str
    vehicle_type: str
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_vin: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    current_location: Optional[str] = None
    status: str
    delivery_alert_status: DeliveryAlertStatus
    progress: int
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    price: Optional[float] = None
    payment_status: str
    auto_status_update: bool
    last_status_sync: Optional[datetime] = None
    container_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ShipmentDetailResponse(ShipmentResponse):
    """Shipment with its event history, newest first."""
    events: List[ShipmentEventResponse] = []


class ShipmentListResponse(PaginatedResponse[ShipmentResponse]):
    pass
