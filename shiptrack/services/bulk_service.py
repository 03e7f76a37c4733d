"""
Bulk shipment operations.

The payload is validated in full before any statement runs. Each mutating
action is then a single set-based UPDATE or DELETE over the id list, so
ids that do not exist are skipped and `count` reports the rows actually
affected.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shiptrack.core.enum_utils import enum_values, normalize_to_uppercase
from shiptrack.core.exceptions import ValidationError
from shiptrack.core.permissions import Principal
from shiptrack.models.audit_log import AuditEntityType
from shiptrack.models.shipment import Shipment, ShipmentStatus, PaymentStatus
from shiptrack.services.audit_service import AuditEntry, AuditRecorder
from shiptrack.services.capacity_service import CapacityService

logger = logging.getLogger(__name__)


class BulkAction(str, Enum):
    UPDATE_STATUS = "updateStatus"
    UPDATE_PROGRESS = "updateProgress"
    ASSIGN_USER = "assignUser"
    UPDATE_PAYMENT_STATUS = "updatePaymentStatus"
    DELETE = "delete"
    UPDATE_LOCATION = "updateLocation"
    SET_ETA = "setETA"
    EXPORT = "export"


# Column written by each update action
ACTION_COLUMNS = {
    BulkAction.UPDATE_STATUS: "status",
    BulkAction.UPDATE_PROGRESS: "progress",
    BulkAction.ASSIGN_USER: "user_id",
    BulkAction.UPDATE_PAYMENT_STATUS: "payment_status",
    BulkAction.UPDATE_LOCATION: "current_location",
    BulkAction.SET_ETA: "estimated_delivery",
}

VALID_SHIPMENT_STATUSES = set(enum_values(ShipmentStatus))
VALID_PAYMENT_STATUSES = set(enum_values(PaymentStatus))


@dataclass
class BulkResult:
    action: BulkAction
    count: int
    data: Optional[List[Shipment]] = None


def _required(data: Dict[str, Any], field: str) -> Any:
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError.for_field(field, "field required")
    return value


def _parse_timestamp(field: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError.for_field(field, "must be an ISO 8601 timestamp")
    else:
        raise ValidationError.for_field(field, "must be an ISO 8601 timestamp")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_payload(action: BulkAction, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Check the action-specific payload and return the column values to write.

    Raises:
        ValidationError: with a per-field detail entry
    """
    data = data or {}

    if action == BulkAction.UPDATE_STATUS:
        status = normalize_to_uppercase(_required(data, "status"), VALID_SHIPMENT_STATUSES)
        if status not in VALID_SHIPMENT_STATUSES:
            raise ValidationError.for_field("status", f"must be one of {', '.join(sorted(VALID_SHIPMENT_STATUSES))}")
        return {"status": status}

    if action == BulkAction.UPDATE_PROGRESS:
        progress = _required(data, "progress")
        if isinstance(progress, bool) or not isinstance(progress, (int, float, str)):
            raise ValidationError.for_field("progress", "must be an integer between 0 and 100")
        try:
            as_float = float(progress)
        except ValueError:
            raise ValidationError.for_field("progress", "must be an integer between 0 and 100")
        if not as_float.is_integer() or not 0 <= as_float <= 100:
            raise ValidationError.for_field("progress", "must be an integer between 0 and 100")
        return {"progress": int(as_float)}

    if action == BulkAction.ASSIGN_USER:
        return {"user_id": str(_required(data, "user_id")).strip()}

    if action == BulkAction.UPDATE_PAYMENT_STATUS:
        payment_status = normalize_to_uppercase(_required(data, "payment_status"), VALID_PAYMENT_STATUSES)
        if payment_status not in VALID_PAYMENT_STATUSES:
            raise ValidationError.for_field(
                "payment_status", f"must be one of {', '.join(sorted(VALID_PAYMENT_STATUSES))}"
            )
        return {"payment_status": payment_status}

    if action == BulkAction.UPDATE_LOCATION:
        location = _required(data, "current_location")
        if not isinstance(location, str):
            raise ValidationError.for_field("current_location", "must be a string")
        return {"current_location": location.strip()}

    if action == BulkAction.SET_ETA:
        return {"estimated_delivery": _parse_timestamp("estimated_delivery", _required(data, "estimated_delivery"))}

    # delete / export carry no payload
    return {}


class BulkShipmentService:
    """Applies one action to many shipments."""

    def __init__(self, db: AsyncSession, recorder: Optional[AuditRecorder] = None):
        self.db = db
        self.recorder = recorder or AuditRecorder()

    async def _existing(self, shipment_ids: Sequence[uuid.UUID], column: Optional[str]) -> List[Tuple]:
        columns = [Shipment.id, Shipment.tracking_number]
        if column:
            columns.append(getattr(Shipment, column))
        result = await self.db.execute(select(*columns).where(Shipment.id.in_(shipment_ids)))
        return list(result.all())

    async def execute(
        self,
        action: BulkAction,
        shipment_ids: Sequence[uuid.UUID],
        data: Optional[Dict[str, Any]],
        principal: Principal,
    ) -> BulkResult:
        if not shipment_ids:
            raise ValidationError.for_field("shipment_ids", "at least one shipment id is required")

        values = validate_payload(action, data)
        ids = list(dict.fromkeys(shipment_ids))

        if action == BulkAction.EXPORT:
            return await self._export(ids)
        if action == BulkAction.DELETE:
            return await self._delete(ids, principal)
        return await self._update(action, ids, values, principal)

    async def _export(self, ids: List[uuid.UUID]) -> BulkResult:
        result = await self.db.execute(
            select(Shipment)
            .where(Shipment.id.in_(ids))
            .options(selectinload(Shipment.events))
            .order_by(Shipment.created_at.desc())
        )
        shipments = list(result.scalars().all())
        return BulkResult(action=BulkAction.EXPORT, count=len(shipments), data=shipments)

    async def _update(
        self,
        action: BulkAction,
        ids: List[uuid.UUID],
        values: Dict[str, Any],
        principal: Principal,
    ) -> BulkResult:
        column = ACTION_COLUMNS[action]
        before = await self._existing(ids, column)

        result = await self.db.execute(
            update(Shipment)
            .where(Shipment.id.in_(ids))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
        await self.db.commit()

        logger.info(f"Bulk {action.value} applied to {count}/{len(ids)} shipments by {principal.actor_id}")

        new_value = values[column]
        if isinstance(new_value, datetime):
            new_value = new_value.isoformat()
        await self.recorder.record_many([
            AuditEntry(
                action=f"BULK_{column.upper()}",
                entity_type=AuditEntityType.SHIPMENT.value,
                entity_id=row.id,
                performed_by=principal.actor_id,
                old_values={column: row[2].isoformat() if isinstance(row[2], datetime) else row[2]},
                new_values={column: new_value},
                description=f"Bulk {action.value} on shipment {row.tracking_number}",
            )
            for row in before
        ])
        return BulkResult(action=action, count=count)

    async def _delete(self, ids: List[uuid.UUID], principal: Principal) -> BulkResult:
        before = await self._existing(ids, "container_id")

        await CapacityService(self.db).release_many(ids)
        result = await self.db.execute(
            delete(Shipment)
            .where(Shipment.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
        await self.db.commit()

        logger.info(f"Bulk delete removed {count}/{len(ids)} shipments by {principal.actor_id}")

        await self.recorder.record_many([
            AuditEntry(
                action="DELETE",
                entity_type=AuditEntityType.SHIPMENT.value,
                entity_id=row.id,
                performed_by=principal.actor_id,
                old_values={
                    "tracking_number": row.tracking_number,
                    "container_id": str(row[2]) if row[2] else None,
                },
                description=f"Bulk deleted shipment {row.tracking_number}",
            )
            for row in before
        ])
        return BulkResult(action=BulkAction.DELETE, count=count)
