"""
Delivery alert classification and the sweep that materializes it.

classify() is pure. DeliveryAlertService.run_sweep() recomputes the cached
delivery_alert_status of every undelivered shipment that has an ETA, writing
only when the level changes, one transaction per shipment.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update

from shiptrack.core.enum_utils import to_enum
from shiptrack.core.permissions import SYSTEM_ACTOR
from shiptrack.database import async_session_factory
from shiptrack.models.audit_log import AuditEntityType
from shiptrack.models.shipment import Shipment, ShipmentStatus, DeliveryAlertStatus
from shiptrack.services.audit_service import AuditEntry, AuditRecorder
from shiptrack.services.notifications import AlertNotifier, LoggingAlertNotifier, dispatch_alert_transitions

logger = logging.getLogger(__name__)

WARNING_WINDOW = timedelta(days=3)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps (SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def classify(
    now: datetime,
    estimated_delivery: Optional[datetime],
    status: Any,
) -> Optional[DeliveryAlertStatus]:
    """
    Alert level for a shipment.

    Returns None when there is no ETA to classify against.

    >>> now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    >>> classify(now, now + timedelta(days=2), "IN_TRANSIT")
    <DeliveryAlertStatus.WARNING: 'WARNING'>
    """
    if to_enum(status, ShipmentStatus) == ShipmentStatus.DELIVERED:
        return DeliveryAlertStatus.DELIVERED
    if estimated_delivery is None:
        return None

    now = as_utc(now)
    eta = as_utc(estimated_delivery)
    if now > eta:
        return DeliveryAlertStatus.OVERDUE
    if eta <= now + WARNING_WINDOW:
        return DeliveryAlertStatus.WARNING
    return DeliveryAlertStatus.ON_TIME


@dataclass
class AlertTransition:
    shipment_id: str
    tracking_number: str
    old_status: Optional[str]
    new_status: str
    estimated_delivery: str
    user_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DeliveryAlertService:
    """Runs the delivery alert sweep."""

    def __init__(
        self,
        session_factory=None,
        notifier: Optional[AlertNotifier] = None,
        recorder: Optional[AuditRecorder] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory or async_session_factory
        self.notifier = notifier or LoggingAlertNotifier()
        self.recorder = recorder or AuditRecorder(self.session_factory)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def _load_candidates(self) -> List[Any]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    Shipment.id,
                    Shipment.tracking_number,
                    Shipment.status,
                    Shipment.estimated_delivery,
                    Shipment.delivery_alert_status,
                    Shipment.user_id,
                )
                .where(
                    Shipment.status != ShipmentStatus.DELIVERED.value,
                    Shipment.estimated_delivery.is_not(None),
                )
                .order_by(Shipment.estimated_delivery.asc())
            )
            return list(result.all())

    async def _apply(self, shipment_id, new_level: DeliveryAlertStatus) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Shipment)
                .where(Shipment.id == shipment_id)
                .values(delivery_alert_status=new_level.value)
            )
            await session.commit()

    async def run_sweep(self) -> Dict[str, Any]:
        """
        Reclassify every candidate shipment.

        Returns:
            {"checked", "overdue", "warning", "on_time", "updated",
             "errors", "transitions": [...], "error_details": [...]}
        """
        now = self.clock()
        results: Dict[str, Any] = {
            "checked": 0,
            "overdue": 0,
            "warning": 0,
            "on_time": 0,
            "updated": 0,
            "errors": 0,
            "transitions": [],
            "error_details": [],
        }
        transitions: List[AlertTransition] = []

        candidates = await self._load_candidates()
        logger.info(f"Delivery alert sweep: {len(candidates)} shipments to check")

        for row in candidates:
            results["checked"] += 1
            try:
                level = classify(now, row.estimated_delivery, row.status)
                if level is None:
                    continue

                if level == DeliveryAlertStatus.OVERDUE:
                    results["overdue"] += 1
                elif level == DeliveryAlertStatus.WARNING:
                    results["warning"] += 1
                elif level == DeliveryAlertStatus.ON_TIME:
                    results["on_time"] += 1

                if level.value == row.delivery_alert_status:
                    continue

                await self._apply(row.id, level)
                results["updated"] += 1

                transition = AlertTransition(
                    shipment_id=str(row.id),
                    tracking_number=row.tracking_number,
                    old_status=row.delivery_alert_status,
                    new_status=level.value,
                    estimated_delivery=as_utc(row.estimated_delivery).isoformat(),
                    user_id=row.user_id,
                )
                transitions.append(transition)

                await self.recorder.record(AuditEntry(
                    action="ALERT_STATUS_CHANGED",
                    entity_type=AuditEntityType.SHIPMENT.value,
                    entity_id=row.id,
                    performed_by=SYSTEM_ACTOR,
                    old_values={"delivery_alert_status": row.delivery_alert_status},
                    new_values={"delivery_alert_status": level.value},
                    description=(
                        f"Delivery alert for {row.tracking_number} changed "
                        f"{row.delivery_alert_status} -> {level.value}"
                    ),
                ))
            except Exception as e:
                results["errors"] += 1
                results["error_details"].append({
                    "shipment_id": str(row.id),
                    "tracking_number": row.tracking_number,
                    "error": str(e),
                })
                logger.error(f"Error checking delivery alert for shipment {row.id}: {e}")

        results["transitions"] = [t.to_dict() for t in transitions]

        if transitions:
            try:
                await dispatch_alert_transitions(transitions, self.notifier)
            except Exception as e:
                logger.error(f"Alert notifier failed for {len(transitions)} transitions: {e}")

        logger.info(
            f"Delivery alert sweep completed: {results['updated']} updated, "
            f"{results['overdue']} overdue, {results['warning']} warning, "
            f"{results['on_time']} on time, {results['errors']} errors"
        )
        return results
