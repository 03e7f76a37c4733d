"""
Shipment Service - intake, edits, deletion and manual tracking updates.

Each public method commits its own transaction and then hands an audit entry
to the AuditRecorder, so a failed audit write never undoes the change.
"""
from typing import Optional, List, Tuple, Dict, Any
import logging
import secrets
import string
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shiptrack.core.enum_utils import get_enum_value, to_enum
from shiptrack.core.exceptions import ConflictError, NotFoundError
from shiptrack.core.permissions import Principal, PermissionChecker
from shiptrack.models.audit_log import AuditEntityType
from shiptrack.models.shipment import Shipment, ShipmentEvent, ShipmentStatus, EventSource
from shiptrack.schemas.shipment import ShipmentCreate, ShipmentUpdate, ShipmentEventCreate
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

# Fields captured in audit snapshots
AUDITED_FIELDS = (
    "tracking_number",
    "user_id",
    "vehicle_type",
    "vehicle_make",
    "vehicle_model",
    "vehicle_year",
    "vehicle_vin",
    "origin",
    "destination",
    "current_location",
    "status",
    "progress",
    "estimated_delivery",
    "actual_delivery",
    "price",
    "payment_status",
    "auto_status_update",
    "container_id",
    "notes",
)


def generate_tracking_number() -> str:
    """Generate a tracking number like SHP20240101K3F9QZ."""
    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"SHP{date_str}{suffix}"


class ShipmentService:
    """Shipment lifecycle operations outside the background sweeps."""

    def __init__(self, db: AsyncSession, recorder: Optional[AuditRecorder] = None):
        self.db = db
        self.recorder = recorder or AuditRecorder()
        self.events = EventLogService(db)
        self.capacity = CapacityService(db)

    # ==================== QUERIES ====================

    async def _load(self, shipment_id: uuid.UUID, with_events: bool = False) -> Shipment:
        query = select(Shipment).where(Shipment.id == shipment_id)
        if with_events:
            query = query.options(selectinload(Shipment.events)).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        shipment = result.scalar_one_or_none()
        if not shipment:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    async def get_shipment(self, shipment_id: uuid.UUID, principal: Principal) -> Shipment:
        """Shipment with events. Owners and admins only."""
        shipment = await self._load(shipment_id, with_events=True)
        PermissionChecker(principal).require_owner_or_admin(shipment.user_id)
        return shipment

    async def list_shipments(
        self,
        principal: Principal,
        status: Optional[ShipmentStatus] = None,
        container_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Shipment], int]:
        """Paginated shipments. Non-admin callers only see their own."""
        conditions = []
        if not principal.is_privileged:
            conditions.append(Shipment.user_id == principal.actor_id)
        if status:
            conditions.append(Shipment.status == get_enum_value(status))
        if container_id:
            conditions.append(Shipment.container_id == container_id)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                Shipment.tracking_number.ilike(pattern)
                | Shipment.vehicle_vin.ilike(pattern)
                | Shipment.vehicle_make.ilike(pattern)
                | Shipment.vehicle_model.ilike(pattern)
            )

        count_query = select(func.count(Shipment.id)).where(*conditions)
        total = await self.db.scalar(count_query) or 0

        query = (
            select(Shipment)
            .where(*conditions)
            .order_by(Shipment.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_events(self, shipment_id: uuid.UUID, principal: Principal) -> List[ShipmentEvent]:
        shipment = await self._load(shipment_id)
        PermissionChecker(principal).require_owner_or_admin(shipment.user_id)
        return await self.events.list_shipment_events(shipment_id)

    # ==================== MUTATIONS ====================

    async def _ensure_unique(
        self,
        tracking_number: Optional[str] = None,
        vehicle_vin: Optional[str] = None,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        if tracking_number:
            query = select(Shipment.id).where(Shipment.tracking_number == tracking_number)
            if exclude_id:
                query = query.where(Shipment.id != exclude_id)
            if await self.db.scalar(query):
                raise ConflictError(f"Tracking number {tracking_number} already exists")
        if vehicle_vin:
            query = select(Shipment.id).where(Shipment.vehicle_vin == vehicle_vin)
            if exclude_id:
                query = query.where(Shipment.id != exclude_id)
            if await self.db.scalar(query):
                raise ConflictError(f"A shipment with VIN {vehicle_vin} already exists")

    async def create_shipment(self, data: ShipmentCreate, principal: Principal) -> Shipment:
        """
        Create a shipment with its initial history.

        Supplied tracking_events are written as-is; otherwise a single
        creation event is recorded. A container_id attaches the shipment
        through the capacity service inside the same transaction.
        """
        PermissionChecker(principal).require_admin()

        tracking_number = data.tracking_number or generate_tracking_number()
        await self._ensure_unique(tracking_number=tracking_number, vehicle_vin=data.vehicle_vin)

        shipment = Shipment(
            tracking_number=tracking_number,
            user_id=data.user_id,
            vehicle_type=data.vehicle_type,
            vehicle_make=data.vehicle_make,
            vehicle_model=data.vehicle_model,
            vehicle_year=data.vehicle_year,
            vehicle_vin=data.vehicle_vin,
            origin=data.origin,
            destination=data.destination,
            current_location=data.current_location,
            status=get_enum_value(data.status),
            estimated_delivery=data.estimated_delivery,
            progress=data.progress,
            price=data.price,
            payment_status=get_enum_value(data.payment_status),
            auto_status_update=data.auto_status_update,
            notes=data.notes,
        )
        self.db.add(shipment)
        await self.db.flush()

        if data.tracking_events:
            for event in data.tracking_events:
                await self.events.append_shipment_event(
                    shipment_id=shipment.id,
                    status=event.status,
                    location=event.location,
                    description=event.description,
                    completed=event.completed,
                    latitude=event.latitude,
                    longitude=event.longitude,
                    event_time=event.event_time,
                    source=EventSource.MANUAL,
                    created_by=principal.actor_id,
                )
        else:
            await self.events.append_shipment_event(
                shipment_id=shipment.id,
                status=shipment.status,
                location=shipment.current_location or shipment.origin,
                description="Shipment created",
                source=EventSource.SYSTEM,
                created_by=principal.actor_id,
            )

        if data.container_id:
            await self.capacity.attach(shipment.id, data.container_id)

        await self.db.commit()
        logger.info(f"Shipment {tracking_number} created by {principal.actor_id}")

        await self.recorder.record(AuditEntry(
            action="CREATE",
            entity_type=AuditEntityType.SHIPMENT.value,
            entity_id=shipment.id,
            performed_by=principal.actor_id,
            new_values=snapshot(shipment, AUDITED_FIELDS),
            description=f"Created shipment {tracking_number}",
        ))

        return await self._load(shipment.id, with_events=True)

    async def update_shipment(
        self,
        shipment_id: uuid.UUID,
        data: ShipmentUpdate,
        principal: Principal,
    ) -> Shipment:
        """Partial update. A container_id change goes through attach/detach."""
        PermissionChecker(principal).require_admin()

        shipment = await self._load(shipment_id)
        before = snapshot(shipment, AUDITED_FIELDS)

        update_data = data.model_dump(exclude_unset=True)
        container_change = "container_id" in update_data
        new_container_id = update_data.pop("container_id", None)

        if "vehicle_vin" in update_data and update_data["vehicle_vin"]:
            update_data["vehicle_vin"] = update_data["vehicle_vin"].strip().upper()
            await self._ensure_unique(vehicle_vin=update_data["vehicle_vin"], exclude_id=shipment.id)

        for field, value in update_data.items():
            setattr(shipment, field, get_enum_value(value) if field in ("status", "payment_status") else value)
        await self.db.flush()

        if container_change:
            if new_container_id is None:
                await self.capacity.detach(shipment.id)
            else:
                await self.capacity.attach(shipment.id, new_container_id)

        await self.db.commit()

        shipment = await self._load(shipment_id, with_events=True)
        old_values, new_values = diff_values(before, snapshot(shipment, AUDITED_FIELDS))
        if new_values:
            await self.recorder.record(AuditEntry(
                action="UPDATE",
                entity_type=AuditEntityType.SHIPMENT.value,
                entity_id=shipment.id,
                performed_by=principal.actor_id,
                old_values=old_values,
                new_values=new_values,
                description=describe_changes(f"shipment {shipment.tracking_number}", old_values, new_values),
            ))
        return shipment

    async def delete_shipment(self, shipment_id: uuid.UUID, principal: Principal) -> None:
        """Delete a shipment, giving back its container slot. Events cascade."""
        PermissionChecker(principal).require_admin()

        shipment = await self._load(shipment_id)
        before = snapshot(shipment, AUDITED_FIELDS)

        await self.capacity.detach(shipment.id)
        await self.db.delete(shipment)
        await self.db.commit()
        logger.info(f"Shipment {before['tracking_number']} deleted by {principal.actor_id}")

        await self.recorder.record(AuditEntry(
            action="DELETE",
            entity_type=AuditEntityType.SHIPMENT.value,
            entity_id=shipment_id,
            performed_by=principal.actor_id,
            old_values=before,
            description=f"Deleted shipment {before['tracking_number']}",
        ))

    async def attach_to_container(
        self,
        shipment_id: uuid.UUID,
        container_id: uuid.UUID,
        principal: Principal,
    ) -> Shipment:
        PermissionChecker(principal).require_admin()

        shipment = await self._load(shipment_id)
        previous = shipment.container_id
        container = await self.capacity.attach(shipment_id, container_id)
        await self.db.commit()

        if previous != container.id:
            await self.recorder.record(AuditEntry(
                action="ATTACH",
                entity_type=AuditEntityType.SHIPMENT.value,
                entity_id=shipment_id,
                performed_by=principal.actor_id,
                old_values={"container_id": str(previous) if previous else None},
                new_values={"container_id": str(container.id)},
                description=(
                    f"Attached shipment {shipment.tracking_number} to container "
                    f"{container.container_number} ({container.current_count}/{container.max_capacity})"
                ),
            ))
        return await self._load(shipment_id)

    async def detach_from_container(self, shipment_id: uuid.UUID, principal: Principal) -> Shipment:
        PermissionChecker(principal).require_admin()

        shipment = await self._load(shipment_id)
        container_id = await self.capacity.detach(shipment_id)
        await self.db.commit()

        if container_id is not None:
            await self.recorder.record(AuditEntry(
                action="DETACH",
                entity_type=AuditEntityType.SHIPMENT.value,
                entity_id=shipment_id,
                performed_by=principal.actor_id,
                old_values={"container_id": str(container_id)},
                new_values={"container_id": None},
                description=f"Detached shipment {shipment.tracking_number} from container {container_id}",
            ))
        return await self._load(shipment_id)

    async def add_event(
        self,
        shipment_id: uuid.UUID,
        data: ShipmentEventCreate,
        principal: Principal,
    ) -> ShipmentEvent:
        """
        Record a manual tracking update.

        When the label is a canonical status different from the shipment's,
        the shipment status moves with it in the same transaction.
        """
        shipment = await self._load(shipment_id)
        PermissionChecker(principal).require_admin()

        event = await self.events.append_shipment_event(
            shipment_id=shipment.id,
            status=data.status,
            location=data.location,
            description=data.description,
            completed=data.completed,
            latitude=data.latitude,
            longitude=data.longitude,
            event_time=data.event_time,
            source=EventSource.MANUAL,
            created_by=principal.actor_id,
        )

        old_status = shipment.status
        new_status = to_enum(data.status.strip().upper(), ShipmentStatus)
        status_changed = new_status is not None and new_status.value != old_status
        if status_changed:
            shipment.status = new_status.value

        await self.db.commit()

        new_values: Dict[str, Any] = {"event_status": data.status, "location": data.location}
        old_values: Optional[Dict[str, Any]] = None
        if status_changed:
            old_values = {"status": old_status}
            new_values["status"] = new_status.value
        await self.recorder.record(AuditEntry(
            action="EVENT_ADDED",
            entity_type=AuditEntityType.SHIPMENT.value,
            entity_id=shipment.id,
            performed_by=principal.actor_id,
            old_values=old_values,
            new_values=new_values,
            description=f"Added event '{data.status}' at {data.location} to shipment {shipment.tracking_number}",
        ))
        return event
