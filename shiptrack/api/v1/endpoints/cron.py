"""
Sweep trigger endpoints for external schedulers.

Both endpoints authenticate with `Authorization: Bearer <CRON_SECRET>` and
always answer 200 with the sweep's results; per-shipment failures are
reported inside the results, never as an HTTP error.
"""
from fastapi import APIRouter, Depends

from shiptrack.api.deps import TrackingClient, verify_cron_secret
from shiptrack.jobs.tracking_jobs import check_delivery_alerts, sync_shipment_status

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.post("/sync-shipment-status")
async def trigger_shipment_status_sync(tracking_client: TrackingClient):
    results = await sync_shipment_status(tracking_client)
    return {"message": "Shipment status sync completed", "results": results}


@router.post("/check-delivery-alerts")
async def trigger_delivery_alert_check():
    results = await check_delivery_alerts()
    return {"message": "Delivery alert check completed", "results": results}
