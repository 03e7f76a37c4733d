"""
Container capacity bookkeeping.

current_count is only ever changed through conditional UPDATE statements,
so two concurrent attaches cannot both take the last free slot. The
shipment's container_id is likewise only rewritten when it still holds the
value that was read, so a slot is taken or given back once per actual move
even when requests overlap. Callers own the transaction: nothing here
commits.
"""
import logging
import uuid
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from shiptrack.core.exceptions import CapacityExceededError, NotFoundError
from shiptrack.models.container import Container, LOADABLE_STATUSES
from shiptrack.models.shipment import Shipment

logger = logging.getLogger(__name__)


class CapacityService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_shipment(self, shipment_id: uuid.UUID) -> Shipment:
        shipment = await self.db.get(Shipment, shipment_id)
        if shipment is None:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    async def _get_container(self, container_id: uuid.UUID) -> Container:
        container = await self.db.get(Container, container_id)
        if container is None:
            raise NotFoundError("Container", container_id)
        return container

    async def _increment(self, container_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            update(Container)
            .where(
                Container.id == container_id,
                Container.current_count < Container.max_capacity,
            )
            .values(current_count=Container.current_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _decrement(self, container_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            update(Container)
            .where(
                Container.id == container_id,
                Container.current_count > 0,
            )
            .values(current_count=Container.current_count - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _set_container(
        self,
        shipment_id: uuid.UUID,
        expected_id: Optional[uuid.UUID],
        container_id: Optional[uuid.UUID],
    ) -> bool:
        """Repoint the shipment only if it still references expected_id."""
        if expected_id is None:
            current = Shipment.container_id.is_(None)
        else:
            current = Shipment.container_id == expected_id
        result = await self.db.execute(
            update(Shipment)
            .where(Shipment.id == shipment_id, current)
            .values(container_id=container_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _claim(self, shipment: Shipment, container_id: uuid.UUID) -> Tuple[bool, Optional[uuid.UUID]]:
        """
        Move the shipment into container_id, re-reading its current container
        whenever another request changed it first.

        Returns (moved, previous_id). moved is False when the shipment turned
        out to be in container_id already.
        """
        previous_id = shipment.container_id
        while previous_id != container_id:
            if await self._set_container(shipment.id, previous_id, container_id):
                return True, previous_id
            await self.db.refresh(shipment)
            previous_id = shipment.container_id
        return False, None

    async def attach(self, shipment_id: uuid.UUID, container_id: uuid.UUID) -> Container:
        """
        Put a shipment into a container.

        Takes a slot in the target first, then points the shipment at the new
        container, then releases the slot held in the container it actually
        left. Attaching to the container the shipment is already in is a no-op.

        Raises:
            NotFoundError: shipment or container does not exist
            CapacityExceededError: target container has no free slot
        """
        shipment = await self._get_shipment(shipment_id)
        container = await self._get_container(container_id)

        if shipment.container_id == container.id:
            return container

        if not await self._increment(container.id):
            await self.db.refresh(container)
            raise CapacityExceededError(container.container_number, container.max_capacity)

        moved, previous_id = await self._claim(shipment, container.id)
        if not moved:
            # Another request already put it here and holds the slot
            await self._decrement(container.id)
        elif previous_id is not None:
            if not await self._decrement(previous_id):
                logger.warning(f"Container {previous_id} count already 0 while detaching shipment {shipment.id}")

        await self.db.refresh(shipment)
        await self.db.refresh(container)

        logger.info(
            f"Attached shipment {shipment.tracking_number} to container {container.container_number} "
            f"({container.current_count}/{container.max_capacity})"
        )
        return container

    async def detach(self, shipment_id: uuid.UUID) -> Optional[uuid.UUID]:
        """
        Remove a shipment from its container.

        Returns the id of the container it left, or None if it had none
        (including when another request detached it first).
        """
        shipment = await self._get_shipment(shipment_id)

        while shipment.container_id is not None:
            container_id = shipment.container_id
            if await self._set_container(shipment.id, container_id, None):
                if not await self._decrement(container_id):
                    logger.warning(
                        f"Container {container_id} count already 0 while detaching shipment {shipment.id}"
                    )
                await self.db.refresh(shipment)
                logger.info(f"Detached shipment {shipment.tracking_number} from container {container_id}")
                return container_id
            await self.db.refresh(shipment)

        return None

    async def release_many(self, shipment_ids: Sequence[uuid.UUID]) -> int:
        """
        Give back the slots held by a set of shipments about to be deleted.

        Does not clear the shipments' foreign keys. Returns the number of
        slots released.
        """
        if not shipment_ids:
            return 0

        result = await self.db.execute(
            select(Shipment.container_id, func.count(Shipment.id))
            .where(
                Shipment.id.in_(shipment_ids),
                Shipment.container_id.is_not(None),
            )
            .group_by(Shipment.container_id)
        )
        released = 0
        for container_id, held in result.all():
            await self.db.execute(
                update(Container)
                .where(Container.id == container_id)
                .values(
                    current_count=case(
                        (Container.current_count >= held, Container.current_count - held),
                        else_=0,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            released += held
        return released

    async def release_container(self, container_id: uuid.UUID) -> int:
        """Detach every shipment from a container and reset its count."""
        result = await self.db.execute(
            update(Shipment)
            .where(Shipment.container_id == container_id)
            .values(container_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Container)
            .where(Container.id == container_id)
            .values(current_count=0)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_active(
        self,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Container], int]:
        """
        Containers that can still take vehicles.

        The status filter runs in SQL, the current_count < max_capacity
        comparison runs on the fetched rows, and total counts the filtered set.
        """
        result = await self.db.execute(
            select(Container)
            .where(Container.status.in_([s.value for s in LOADABLE_STATUSES]))
            .order_by(Container.created_at.desc())
        )
        active = [c for c in result.scalars().all() if c.is_active]
        offset = (page - 1) * size
        return active[offset:offset + size], len(active)
