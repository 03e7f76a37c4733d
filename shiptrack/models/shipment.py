"""Shipment models for vehicle shipments and their event history."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Float
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiptrack.core.enum_utils import enum_comment
from shiptrack.database import Base
from shiptrack.db_types import UUIDType

if TYPE_CHECKING:
    from shiptrack.models.container import Container


class ShipmentStatus(str, Enum):
    """Canonical shipment lifecycle status."""
    PENDING = "PENDING"
    QUOTE_REQUESTED = "QUOTE_REQUESTED"
    QUOTE_APPROVED = "QUOTE_APPROVED"
    PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
    PICKUP_COMPLETED = "PICKUP_COMPLETED"
    IN_TRANSIT = "IN_TRANSIT"
    AT_PORT = "AT_PORT"
    LOADED_ON_VESSEL = "LOADED_ON_VESSEL"
    IN_TRANSIT_OCEAN = "IN_TRANSIT_OCEAN"
    ARRIVED_AT_DESTINATION = "ARRIVED_AT_DESTINATION"
    CUSTOMS_CLEARANCE = "CUSTOMS_CLEARANCE"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


# Never picked up by the reconciliation sweep
TERMINAL_STATUSES = (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED)


class DeliveryAlertStatus(str, Enum):
    """Derived urgency level, recomputed by the delivery alert sweep."""
    ON_TIME = "ON_TIME"
    WARNING = "WARNING"
    OVERDUE = "OVERDUE"
    DELIVERED = "DELIVERED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class EventSource(str, Enum):
    """Where an event row came from."""
    MANUAL = "MANUAL"
    API = "API"
    SYSTEM = "SYSTEM"


class Shipment(Base):
    """
    A single vehicle moving from origin to destination.
    May be consolidated into a container for the ocean leg.
    """
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    tracking_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Carrier-facing tracking number e.g., SHP20240101ABC123"
    )

    # Owner (opaque actor id from the identity provider)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Vehicle
    vehicle_type: Mapped[str] = mapped_column(String(50), nullable=False)
    vehicle_make: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    vehicle_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    vehicle_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    vehicle_vin: Mapped[Optional[str]] = mapped_column(
        String(17),
        unique=True,
        nullable=True,
        index=True
    )

    # Route
    origin: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    destination: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    current_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=ShipmentStatus.PENDING.value,
        nullable=False,
        index=True,
        comment=enum_comment(ShipmentStatus)
    )
    delivery_alert_status: Mapped[str] = mapped_column(
        String(50),
        default=DeliveryAlertStatus.ON_TIME.value,
        nullable=False,
        comment=enum_comment(DeliveryAlertStatus)
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False, comment="0-100")

    # Dates
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )
    actual_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Payment
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    payment_status: Mapped[str] = mapped_column(
        String(50),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        comment=enum_comment(PaymentStatus)
    )

    # Reconciliation
    auto_status_update: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_status_sync: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last successful tracking lookup, stamped even without a status change"
    )

    # Container
    container_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("containers.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

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
    container: Mapped[Optional["Container"]] = relationship(
        "Container",
        back_populates="shipments"
    )
    events: Mapped[List["ShipmentEvent"]] = relationship(
        "ShipmentEvent",
        back_populates="shipment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [ShipmentEvent.event_time.desc(), ShipmentEvent.created_at.desc()]
    )

    def __repr__(self) -> str:
        return f"<Shipment(tracking_number='{self.tracking_number}', status='{self.status}')>"


class ShipmentEvent(Base):
    """
    Immutable shipment history entry.
    Written on intake, by manual tracking updates, and by the reconciler.
    """
    __tablename__ = "shipment_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Free-form label; canonical statuses are the common case
    status: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    event_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="When the event happened, may be backfilled"
    )
    source: Mapped[str] = mapped_column(
        String(50),
        default=EventSource.SYSTEM.value,
        nullable=False,
        comment=enum_comment(EventSource)
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    shipment: Mapped["Shipment"] = relationship("Shipment", back_populates="events")

    def __repr__(self) -> str:
        return f"<ShipmentEvent(status='{self.status}', event_time='{self.event_time}')>"
