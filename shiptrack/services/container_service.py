"""
Container Service - container CRUD, container tracking history and invoices.
"""
from typing import Optional, List, Tuple, Dict
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shiptrack.config import settings
from shiptrack.core.enum_utils import get_enum_value
from shiptrack.core.exceptions import ConflictError, NotFoundError, ValidationError
from shiptrack.core.permissions import Principal, PermissionChecker
from shiptrack.models.audit_log import AuditEntityType
from shiptrack.models.container import (
    Container,
    ContainerStatus,
    ContainerTrackingEvent,
    ContainerInvoice,
    InvoiceStatus,
)
from shiptrack.schemas.container import (
    ContainerCreate,
    ContainerUpdate,
    ContainerTrackingEventCreate,
    ContainerInvoiceCreate,
)
from shiptrack.services.audit_service import (
    AuditEntry,
    AuditRecorder,
    snapshot,
    diff_values,
    describe_changes,
)
from shiptrack.services.capacity_service import CapacityService
from shiptrack.services.event_log_service import EventLogService

logger = logging.getLogger(__name__)

AUDITED_FIELDS = (
    "container_number",
    "max_capacity",
    "current_count",
    "status",
    "tracking_number",
    "vessel_name",
    "voyage_number",
    "shipping_line",
    "booking_number",
    "loading_port",
    "destination_port",
    "loading_date",
    "departure_date",
    "estimated_arrival",
    "actual_arrival",
    "current_location",
    "auto_tracking",
    "notes",
)

# Invoices that no longer count as money owed
SETTLED_INVOICE_STATUSES = {InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value}


def invoice_totals(invoices: List[ContainerInvoice]) -> Dict[str, float]:
    """
    Sum of all invoices, of paid invoices, and of what is still owed.
    Cancelled invoices count toward total but are never outstanding.
    """
    total = sum((Decimal(i.amount) for i in invoices), Decimal("0"))
    paid = sum((Decimal(i.amount) for i in invoices if i.status == InvoiceStatus.PAID.value), Decimal("0"))
    outstanding = sum(
        (Decimal(i.amount) for i in invoices if i.status not in SETTLED_INVOICE_STATUSES),
        Decimal("0"),
    )
    return {"total": float(total), "paid": float(paid), "outstanding": float(outstanding)}


class ContainerService:
    """Admin operations on containers."""

    def __init__(self, db: AsyncSession, recorder: Optional[AuditRecorder] = None):
        self.db = db
        self.recorder = recorder or AuditRecorder()
        self.events = EventLogService(db)
        self.capacity = CapacityService(db)

    async def _load(self, container_id: uuid.UUID, with_details: bool = False) -> Container:
        query = select(Container).where(Container.id == container_id)
        if with_details:
            query = query.options(
                selectinload(Container.shipments),
                selectinload(Container.invoices),
                selectinload(Container.tracking_events),
            ).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        container = result.scalar_one_or_none()
        if not container:
            raise NotFoundError("Container", container_id)
        return container

    async def get_container(self, container_id: uuid.UUID) -> Container:
        return await self._load(container_id, with_details=True)

    async def list_containers(
        self,
        status: Optional[ContainerStatus] = None,
        search: Optional[str] = None,
        active_only: bool = False,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Container], int]:
        """
        Paginated containers.

        active_only delegates to the capacity service, which filters on
        fetched rows and counts the filtered set.
        """
        if active_only:
            return await self.capacity.list_active(page=page, size=size)

        conditions = []
        if status:
            conditions.append(Container.status == get_enum_value(status))
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                Container.container_number.ilike(pattern),
                Container.vessel_name.ilike(pattern),
                Container.booking_number.ilike(pattern),
            ))

        total = await self.db.scalar(select(func.count(Container.id)).where(*conditions)) or 0
        result = await self.db.execute(
            select(Container)
            .where(*conditions)
            .order_by(Container.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    async def create_container(self, data: ContainerCreate, principal: Principal) -> Container:
        PermissionChecker(principal).require_admin()

        existing = await self.db.scalar(
            select(Container.id).where(Container.container_number == data.container_number)
        )
        if existing:
            raise ConflictError(f"Container number {data.container_number} already exists")

        values = data.model_dump()
        values["status"] = get_enum_value(values["status"])
        if values.get("max_capacity") is None:
            values["max_capacity"] = settings.DEFAULT_CONTAINER_CAPACITY
        if values.get("current_location"):
            values["last_location_update"] = datetime.now(timezone.utc)

        container = Container(**values, current_count=0)
        self.db.add(container)
        await self.db.commit()
        logger.info(f"Container {container.container_number} created by {principal.actor_id}")

        await self.recorder.record(AuditEntry(
            action="CREATE",
            entity_type=AuditEntityType.CONTAINER.value,
            entity_id=container.id,
            performed_by=principal.actor_id,
            new_values=snapshot(container, AUDITED_FIELDS),
            description=f"Created container {container.container_number}",
        ))
        return container

    async def update_container(
        self,
        container_id: uuid.UUID,
        data: ContainerUpdate,
        principal: Principal,
    ) -> Container:
        PermissionChecker(principal).require_admin()

        container = await self._load(container_id)
        before = snapshot(container, AUDITED_FIELDS)
        update_data = data.model_dump(exclude_unset=True)

        # Checked against the stored count at write time, not the row read above
        new_capacity = update_data.pop("max_capacity", None)
        if new_capacity is not None:
            result = await self.db.execute(
                update(Container)
                .where(Container.id == container.id, Container.current_count <= new_capacity)
                .values(max_capacity=new_capacity)
                .execution_options(synchronize_session=False)
            )
            await self.db.refresh(container, attribute_names=["max_capacity", "current_count"])
            if result.rowcount != 1:
                raise ValidationError.for_field(
                    "max_capacity",
                    f"cannot be lower than the {container.current_count} shipments already loaded",
                )

        if "current_location" in update_data and update_data["current_location"] != container.current_location:
            container.last_location_update = datetime.now(timezone.utc)

        for field, value in update_data.items():
            setattr(container, field, get_enum_value(value) if field == "status" else value)

        await self.db.commit()

        old_values, new_values = diff_values(before, snapshot(container, AUDITED_FIELDS))
        if new_values:
            await self.recorder.record(AuditEntry(
                action="UPDATE",
                entity_type=AuditEntityType.CONTAINER.value,
                entity_id=container.id,
                performed_by=principal.actor_id,
                old_values=old_values,
                new_values=new_values,
                description=describe_changes(f"container {container.container_number}", old_values, new_values),
            ))
        return container

    async def delete_container(self, container_id: uuid.UUID, principal: Principal) -> None:
        """Delete a container. Its shipments are detached, events and invoices cascade."""
        PermissionChecker(principal).require_admin()

        container = await self._load(container_id)
        before = snapshot(container, AUDITED_FIELDS)

        released = await self.capacity.release_container(container.id)
        await self.db.delete(container)
        await self.db.commit()
        logger.info(
            f"Container {before['container_number']} deleted by {principal.actor_id}, "
            f"{released} shipments detached"
        )

        await self.recorder.record(AuditEntry(
            action="DELETE",
            entity_type=AuditEntityType.CONTAINER.value,
            entity_id=container_id,
            performed_by=principal.actor_id,
            old_values=before,
            description=f"Deleted container {before['container_number']} ({released} shipments detached)",
        ))

    # ==================== TRACKING ====================

    async def list_tracking_events(self, container_id: uuid.UUID, limit: int = 50) -> List[ContainerTrackingEvent]:
        await self._load(container_id)
        return await self.events.list_container_events(container_id, limit=limit)

    async def add_tracking_event(
        self,
        container_id: uuid.UUID,
        data: ContainerTrackingEventCreate,
        principal: Principal,
    ) -> ContainerTrackingEvent:
        """Append a tracking event. A location also moves the container's current location."""
        PermissionChecker(principal).require_admin()

        container = await self._load(container_id)
        old_location = container.current_location

        event = await self.events.append_container_event(
            container_id=container.id,
            status=data.status,
            event_time=data.event_date,
            location=data.location,
            vessel_name=data.vessel_name,
            description=data.description,
            completed=data.completed,
            latitude=data.latitude,
            longitude=data.longitude,
            source=data.source,
            created_by=principal.actor_id,
        )

        if data.location:
            container.current_location = data.location
            container.last_location_update = datetime.now(timezone.utc)

        await self.db.commit()

        await self.recorder.record(AuditEntry(
            action="EVENT_ADDED",
            entity_type=AuditEntityType.CONTAINER.value,
            entity_id=container.id,
            performed_by=principal.actor_id,
            old_values={"current_location": old_location} if data.location else None,
            new_values={"event_status": data.status, "location": data.location},
            description=f"Added tracking event '{data.status}' to container {container.container_number}",
        ))
        return event

    # ==================== INVOICES ====================

    async def list_invoices(self, container_id: uuid.UUID) -> Tuple[List[ContainerInvoice], Dict[str, float]]:
        await self._load(container_id)
        result = await self.db.execute(
            select(ContainerInvoice)
            .where(ContainerInvoice.container_id == container_id)
            .order_by(ContainerInvoice.invoice_date.desc(), ContainerInvoice.created_at.desc())
        )
        invoices = list(result.scalars().all())
        return invoices, invoice_totals(invoices)

    async def add_invoice(
        self,
        container_id: uuid.UUID,
        data: ContainerInvoiceCreate,
        principal: Principal,
    ) -> ContainerInvoice:
        PermissionChecker(principal).require_admin()

        container = await self._load(container_id)
        invoice = ContainerInvoice(
            container_id=container.id,
            invoice_number=data.invoice_number,
            amount=data.amount,
            currency=data.currency,
            vendor=data.vendor,
            invoice_date=data.invoice_date,
            due_date=data.due_date,
            status=get_enum_value(data.status),
            file_url=data.file_url,
            notes=data.notes,
        )
        self.db.add(invoice)
        await self.db.commit()

        await self.recorder.record(AuditEntry(
            action="INVOICE_ADDED",
            entity_type=AuditEntityType.CONTAINER.value,
            entity_id=container.id,
            performed_by=principal.actor_id,
            new_values={
                "invoice_number": invoice.invoice_number,
                "amount": float(invoice.amount),
                "currency": invoice.currency,
                "status": invoice.status,
            },
            description=f"Added invoice {invoice.invoice_number} ({invoice.amount} {invoice.currency}) to container {container.container_number}",
        ))
        return invoice
