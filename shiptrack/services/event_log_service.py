"""
Append-only event history for shipments and containers.

Events are inserted and listed, never updated or deleted here. Deleting
the parent entity cascades its events at the database level.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiptrack.core.enum_utils import get_enum_value
from shiptrack.models.container import ContainerTrackingEvent
from shiptrack.models.shipment import ShipmentEvent, EventSource


class EventLogService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append_shipment_event(
        self,
        shipment_id: uuid.UUID,
        status: str,
        location: Optional[str] = None,
        description: Optional[str] = None,
        completed: bool = False,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        event_time: Optional[datetime] = None,
        source: EventSource = EventSource.SYSTEM,
        created_by: Optional[str] = None,
    ) -> ShipmentEvent:
        event = ShipmentEvent(
            shipment_id=shipment_id,
            status=get_enum_value(status),
            location=location,
            description=description,
            completed=completed,
            latitude=latitude,
            longitude=longitude,
            event_time=event_time or datetime.now(timezone.utc),
            source=get_enum_value(source),
            created_by=created_by,
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def append_container_event(
        self,
        container_id: uuid.UUID,
        status: str,
        event_time: datetime,
        location: Optional[str] = None,
        vessel_name: Optional[str] = None,
        description: Optional[str] = None,
        completed: bool = False,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        source: EventSource = EventSource.MANUAL,
        created_by: Optional[str] = None,
    ) -> ContainerTrackingEvent:
        event = ContainerTrackingEvent(
            container_id=container_id,
            status=status,
            location=location,
            vessel_name=vessel_name,
            description=description,
            completed=completed,
            latitude=latitude,
            longitude=longitude,
            event_time=event_time,
            source=get_enum_value(source),
            created_by=created_by,
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def list_shipment_events(self, shipment_id: uuid.UUID) -> List[ShipmentEvent]:
        """Newest first; creation order breaks ties between equal event times."""
        result = await self.db.execute(
            select(ShipmentEvent)
            .where(ShipmentEvent.shipment_id == shipment_id)
            .order_by(ShipmentEvent.event_time.desc(), ShipmentEvent.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_container_events(
        self,
        container_id: uuid.UUID,
        limit: int = 50,
    ) -> List[ContainerTrackingEvent]:
        result = await self.db.execute(
            select(ContainerTrackingEvent)
            .where(ContainerTrackingEvent.container_id == container_id)
            .order_by(ContainerTrackingEvent.event_time.desc(), ContainerTrackingEvent.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
