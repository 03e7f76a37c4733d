"""Consolidation container models: containers, their tracking history and invoices."""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, Date, ForeignKey, Integer, Text, Float, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiptrack.core.enum_utils import enum_comment
from shiptrack.database import Base
from shiptrack.db_types import UUIDType

if TYPE_CHECKING:
    from shiptrack.models.shipment import Shipment


class ContainerStatus(str, Enum):
    """Container lifecycle status."""
    CREATED = "CREATED"
    WAITING_FOR_LOADING = "WAITING_FOR_LOADING"
    LOADED = "LOADED"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED_PORT = "ARRIVED_PORT"
    CUSTOMS_CLEARANCE = "CUSTOMS_CLEARANCE"
    RELEASED = "RELEASED"
    DELIVERED = "DELIVERED"
    CLOSED = "CLOSED"


# Statuses in which a container still accepts vehicles
LOADABLE_STATUSES = (
    ContainerStatus.CREATED,
    ContainerStatus.WAITING_FOR_LOADING,
    ContainerStatus.LOADED,
    ContainerStatus.IN_TRANSIT,
)


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class Container(Base):
    """
    Shipping container that consolidates several vehicle shipments.
    current_count is maintained by the capacity service only.
    """
    __tablename__ = "containers"
    __table_args__ = (
        CheckConstraint("max_capacity >= 1", name="ck_containers_max_capacity_positive"),
        CheckConstraint(
            "current_count >= 0 AND current_count <= max_capacity",
            name="ck_containers_current_count_bounds"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    container_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="ISO 6346 container number e.g., MSCU1234567"
    )

    # Capacity
    max_capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    current_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        default=ContainerStatus.CREATED.value,
        nullable=False,
        index=True,
        comment=enum_comment(ContainerStatus)
    )

    # Voyage
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    vessel_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    voyage_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipping_line: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    booking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    loading_port: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    destination_port: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    loading_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    departure_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_arrival: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_arrival: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Location
    current_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_location_update: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    auto_tracking: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    shipments: Mapped[List["Shipment"]] = relationship(
        "Shipment",
        back_populates="container",
        passive_deletes=True
    )
    tracking_events: Mapped[List["ContainerTrackingEvent"]] = relationship(
        "ContainerTrackingEvent",
        back_populates="container",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [ContainerTrackingEvent.event_time.desc(), ContainerTrackingEvent.created_at.desc()]
    )
    invoices: Mapped[List["ContainerInvoice"]] = relationship(
        "ContainerInvoice",
        back_populates="container",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: ContainerInvoice.invoice_date.desc()
    )

    @property
    def has_free_slot(self) -> bool:
        return self.current_count < self.max_capacity

    @property
    def is_active(self) -> bool:
        """Loadable status and room for at least one more vehicle."""
        return self.status in {s.value for s in LOADABLE_STATUSES} and self.has_free_slot

    def __repr__(self) -> str:
        return f"<Container(number='{self.container_number}', {self.current_count}/{self.max_capacity})>"


class ContainerTrackingEvent(Base):
    """Immutable container history entry (port calls, vessel updates, manual notes)."""
    __tablename__ = "container_tracking_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    container_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    vessel_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    event_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the event happened, may be backfilled"
    )
    source: Mapped[str] = mapped_column(
        String(50),
        default="MANUAL",
        nullable=False,
        comment="MANUAL, API, SYSTEM"
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    container: Mapped["Container"] = relationship("Container", back_populates="tracking_events")

    def __repr__(self) -> str:
        return f"<ContainerTrackingEvent(status='{self.status}', event_time='{self.event_time}')>"


class ContainerInvoice(Base):
    """Freight or handling invoice billed against a container."""
    __tablename__ = "container_invoices"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    container_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    vendor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default=InvoiceStatus.DRAFT.value,
        nullable=False,
        comment=enum_comment(InvoiceStatus)
    )
    file_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    container: Mapped["Container"] = relationship("Container", back_populates="invoices")

    def __repr__(self) -> str:
        return f"<ContainerInvoice(number='{self.invoice_number}', amount={self.amount})>"
