"""Pydantic schemas for containers, container tracking and invoices."""
from pydantic import Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime, date
from decimal import Decimal
import uuid

from shiptrack.core.enum_utils import enum_values, normalize_to_uppercase
from shiptrack.models.container import ContainerStatus, InvoiceStatus
from shiptrack.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, PaginatedResponse
from shiptrack.schemas.shipment import ShipmentResponse


VALID_CONTAINER_STATUSES = set(enum_values(ContainerStatus))
VALID_INVOICE_STATUSES = set(enum_values(InvoiceStatus))


# ==================== TRACKING EVENTS ====================

class ContainerTrackingEventCreate(BaseCreateSchema):
    status: str = Field(..., min_length=1, max_length=100)
    location: Optional[str] = None
    vessel_name: Optional[str] = None
    description: Optional[str] = None
    event_date: datetime
    source: str = "MANUAL"
    completed: bool = False
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("source", mode="before")
    @classmethod
    def _normalize_source(cls, v):
        return v.upper() if isinstance(v, str) else v


class ContainerTrackingEventResponse(BaseResponseSchema):
    id: uuid.UUID
    container_id: uuid.UUID
    status: str
    location: Optional[str] = None
    vessel_name: Optional[str] = None
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    completed: bool
    event_time: datetime
    source: str
    created_by: Optional[str] = None
    created_at: datetime


# ==================== INVOICES ====================

class ContainerInvoiceCreate(BaseCreateSchema):
    invoice_number: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    vendor: Optional[str] = None
    invoice_date: date
    due_date: Optional[date] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    file_url: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_to_uppercase(v, VALID_INVOICE_STATUSES)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v):
        return v.upper()


class ContainerInvoiceResponse(BaseResponseSchema):
    id: uuid.UUID
    container_id: uuid.UUID
    invoice_number: str
    amount: float
    currency: str
    vendor: Optional[str] = None
    invoice_date: date
    due_date: Optional[date] = None
    status: str
    file_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class InvoiceTotals(BaseResponseSchema):
    total: float
    paid: float
    outstanding: float


class ContainerInvoiceListResponse(BaseResponseSchema):
    items: List[ContainerInvoiceResponse]
    totals: InvoiceTotals


# ==================== CONTAINERS ====================

class ContainerCreate(BaseCreateSchema):
    container_number: str = Field(..., min_length=4, max_length=50)
    max_capacity: Optional[int] = Field(None, ge=1, le=100)
    status: ContainerStatus = ContainerStatus.CREATED
    tracking_number: Optional[str] = None
    vessel_name: Optional[str] = None
    voyage_number: Optional[str] = None
    shipping_line: Optional[str] = None
    booking_number: Optional[str] = None
    loading_port: Optional[str] = None
    destination_port: Optional[str] = None
    loading_date: Optional[datetime] = None
    departure_date: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    current_location: Optional[str] = None
    auto_tracking: bool = True
    notes: Optional[str] = None

    @field_validator("container_number")
    @classmethod
    def _normalize_number(cls, v):
        return v.strip().upper()

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_to_uppercase(v, VALID_CONTAINER_STATUSES)


class ContainerUpdate(BaseUpdateSchema):
    """current_count is not settable, it moves only through attach/detach."""
    max_capacity: Optional[int] = Field(None, ge=1, le=100)
    status: Optional[ContainerStatus] = None
    tracking_number: Optional[str] = None
    vessel_name: Optional[str] = None
    voyage_number: Optional[str] = None
    shipping_line: Optional[str] = None
    booking_number: Optional[str] = None
    loading_port: Optional[str] = None
    destination_port: Optional[str] = None
    loading_date: Optional[datetime] = None
    departure_date: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    current_location: Optional[str] = None
    auto_tracking: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_to_uppercase(v, VALID_CONTAINER_STATUSES)


class ContainerResponse(BaseResponseSchema):
    id: uuid.UUID
    container_number: str
    max_capacity: int
    current_count: int
    status: str
    tracking_number: Optional[str] = None
    vessel_name: Optional[str] = None
    voyage_number: Optional[str] = None
    shipping_line: Optional[str] = None
    booking_number: Optional[str] = None
    loading_port: Optional[str] = None
    destination_port: Optional[str] = None
    loading_date: Optional[datetime] = None
    departure_date: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    current_location: Optional[str] = None
    last_location_update: Optional[datetime] = None
    auto_tracking: bool
    notes: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ContainerDetailResponse(ContainerResponse):
    shipments: List[ShipmentResponse] = []
    invoices: List[ContainerInvoiceResponse] = []
    tracking_events: List[ContainerTrackingEventResponse] = []


class ContainerListResponse(PaginatedResponse[ContainerResponse]):
    pass


class ContainerLookupResponse(BaseResponseSchema):
    message: str
    tracking_data: Optional[Dict[str, Any]] = None
