"""
Status reconciliation against the external tracking source.

Each shipment in the working set is handled in its own transaction:

* fetch failure or no data: counted as an error, last_status_sync untouched
  so the next sweep retries it
* mapped status differs: status, location, progress, last_status_sync and
  one API event are written together
* otherwise: only last_status_sync is stamped

There is no guard against a signal moving a shipment backwards (e.g.
IN_TRANSIT -> PENDING); whatever the mapping yields is applied.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, update

from shiptrack.config import settings
from shiptrack.core.exceptions import ExternalFetchError
from shiptrack.core.permissions import SYSTEM_ACTOR
from shiptrack.database import async_session_factory
from shiptrack.models.audit_log import AuditEntityType
from shiptrack.models.shipment import Shipment, ShipmentStatus, EventSource, TERMINAL_STATUSES
from shiptrack.services.audit_service import AuditEntry, AuditRecorder
from shiptrack.services.event_log_service import EventLogService
from shiptrack.services.tracking_client import TrackingAPIService, TrackingInfo

logger = logging.getLogger(__name__)

AUTO_UPDATE_DESCRIPTION = "Status automatically updated from tracking API"
UNKNOWN_LOCATION = "Unknown"


def _contains(needle: str) -> Callable[[str], bool]:
    return lambda text: needle in text


# Evaluated top to bottom, first match wins. "DELIVERED" has to come before
# "TRANSIT" so that e.g. "Delivered after transit" maps to DELIVERED.
STATUS_RULES: List[Tuple[Callable[[str], bool], ShipmentStatus]] = [
    (_contains("DELIVERED"), ShipmentStatus.DELIVERED),
    (_contains("TRANSIT"), ShipmentStatus.IN_TRANSIT),
    (_contains("PENDING"), ShipmentStatus.PENDING),
]


def map_external_status(raw_status: Optional[str]) -> Optional[ShipmentStatus]:
    """
    Map carrier free text to a canonical status, case-insensitively.

    >>> map_external_status("Out for delivery - in transit")
    <ShipmentStatus.IN_TRANSIT: 'IN_TRANSIT'>
    >>> map_external_status("Held at customs") is None
    True
    """
    if not raw_status:
        return None
    text = raw_status.upper()
    for predicate, status in STATUS_RULES:
        if predicate(text):
            return status
    return None


class StatusReconciler:
    """Runs the shipment status sync sweep."""

    def __init__(
        self,
        tracking_client: Optional[TrackingAPIService] = None,
        session_factory=None,
        recorder: Optional[AuditRecorder] = None,
        fetch_timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.tracking_client = tracking_client or TrackingAPIService()
        self.session_factory = session_factory or async_session_factory
        self.recorder = recorder or AuditRecorder(self.session_factory)
        self.fetch_timeout = fetch_timeout or settings.TRACKING_API_TIMEOUT
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def _load_working_set(self) -> List[Any]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    Shipment.id,
                    Shipment.tracking_number,
                    Shipment.status,
                    Shipment.current_location,
                    Shipment.progress,
                )
                .where(
                    Shipment.auto_status_update.is_(True),
                    Shipment.status.not_in([s.value for s in TERMINAL_STATUSES]),
                )
                .order_by(Shipment.last_status_sync.asc().nulls_first(), Shipment.created_at.asc())
            )
            return list(result.all())

    async def _fetch(self, tracking_number: str) -> Optional[TrackingInfo]:
        try:
            return await asyncio.wait_for(
                self.tracking_client.fetch_status(tracking_number),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalFetchError(
                f"Tracking lookup timed out after {self.fetch_timeout}s"
            ) from e

    async def reconcile_one(self, row: Any) -> Dict[str, Any]:
        """
        Reconcile a single working-set row.

        Returns a detail dict with "updated" true/false.

        Raises:
            ExternalFetchError: lookup failed or returned no data
        """
        info = await self._fetch(row.tracking_number)
        if info is None:
            raise ExternalFetchError("No tracking data available")

        now = self.clock()
        mapped = map_external_status(info.status)

        async with self.session_factory() as session:
            if mapped is not None and mapped.value != row.status:
                values: Dict[str, Any] = {
                    "status": mapped.value,
                    "last_status_sync": now,
                }
                if info.current_location:
                    values["current_location"] = info.current_location
                if info.progress is not None:
                    values["progress"] = info.progress

                await session.execute(
                    update(Shipment).where(Shipment.id == row.id).values(**values)
                )
                await EventLogService(session).append_shipment_event(
                    shipment_id=row.id,
                    status=mapped.value,
                    location=info.current_location or UNKNOWN_LOCATION,
                    description=AUTO_UPDATE_DESCRIPTION,
                    completed=mapped == ShipmentStatus.DELIVERED,
                    event_time=now,
                    source=EventSource.API,
                )
                await session.commit()
            else:
                await session.execute(
                    update(Shipment).where(Shipment.id == row.id).values(last_status_sync=now)
                )
                await session.commit()
                return {
                    "shipment_id": str(row.id),
                    "tracking_number": row.tracking_number,
                    "updated": False,
                    "status": row.status,
                    "external_status": info.status,
                }

        await self.recorder.record(AuditEntry(
            action="STATUS_SYNC",
            entity_type=AuditEntityType.SHIPMENT.value,
            entity_id=row.id,
            performed_by=SYSTEM_ACTOR,
            old_values={
                "status": row.status,
                "current_location": row.current_location,
                "progress": row.progress,
            },
            new_values={k: v for k, v in values.items() if k != "last_status_sync"},
            description=f"Status of {row.tracking_number} synced {row.status} -> {mapped.value}",
        ))

        return {
            "shipment_id": str(row.id),
            "tracking_number": row.tracking_number,
            "updated": True,
            "old_status": row.status,
            "new_status": mapped.value,
            "external_status": info.status,
        }

    async def run_sweep(self) -> Dict[str, Any]:
        """
        Reconcile every shipment in the working set.

        Returns:
            {"total", "updated", "errors", "details": [...]}
        """
        results: Dict[str, Any] = {
            "total": 0,
            "updated": 0,
            "errors": 0,
            "details": [],
        }

        rows = await self._load_working_set()
        results["total"] = len(rows)
        logger.info(f"Status sync sweep: {len(rows)} shipments to reconcile")

        for row in rows:
            try:
                detail = await self.reconcile_one(row)
                if detail["updated"]:
                    results["updated"] += 1
                    results["details"].append(detail)
            except ExternalFetchError as e:
                results["errors"] += 1
                results["details"].append({
                    "shipment_id": str(row.id),
                    "tracking_number": row.tracking_number,
                    "error": e.message,
                })
                logger.warning(f"Tracking fetch failed for {row.tracking_number}: {e.message}")
            except Exception as e:
                results["errors"] += 1
                results["details"].append({
                    "shipment_id": str(row.id),
                    "tracking_number": row.tracking_number,
                    "error": str(e),
                })
                logger.error(f"Error syncing shipment {row.id}: {e}")

        logger.info(
            f"Status sync sweep completed: {results['updated']}/{results['total']} updated, "
            f"{results['errors']} errors"
        )
        return results
