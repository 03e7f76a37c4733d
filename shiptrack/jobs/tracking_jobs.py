"""
Tracking Jobs

Background sweeps over shipments:
- Status reconciliation against the external tracking source
- Delivery alert classification

Both are invoked by the scheduler and by the cron trigger endpoints.
"""

import logging
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from shiptrack.services.delivery_alerts import DeliveryAlertService
from shiptrack.services.status_reconciler import StatusReconciler
from shiptrack.services.tracking_client import TrackingAPIService

logger = logging.getLogger(__name__)


async def sync_shipment_status(tracking_client: Optional[TrackingAPIService] = None) -> Dict[str, Any]:
    """
    Reconcile shipment status with the tracking source.

    Runs every STATUS_SYNC_INTERVAL_MINUTES to:
    1. Find shipments with auto_status_update on and a non-terminal status
    2. Fetch the latest external status for each
    3. Map it to a canonical status and record an event when it changed
    """
    logger.info("Starting shipment status sync...")
    start_time = datetime.now(timezone.utc)

    results = await StatusReconciler(tracking_client=tracking_client).run_sweep()

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Shipment status sync finished in {duration:.2f}s")
    return results


async def check_delivery_alerts() -> Dict[str, Any]:
    """
    Recompute delivery_alert_status for undelivered shipments with an ETA.

    Runs every DELIVERY_ALERT_INTERVAL_MINUTES. Transitions are handed to
    the alert notifier.
    """
    logger.info("Starting delivery alert check...")
    start_time = datetime.now(timezone.utc)

    results = await DeliveryAlertService().run_sweep()

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Delivery alert check finished in {duration:.2f}s")
    return results
