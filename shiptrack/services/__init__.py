# Services module
from shiptrack.services.audit_service import AuditService, AuditRecorder, AuditEntry
from shiptrack.services.event_log_service import EventLogService
from shiptrack.services.capacity_service import CapacityService
from shiptrack.services.shipment_service import ShipmentService
from shiptrack.services.container_service import ContainerService
from shiptrack.services.bulk_service import BulkShipmentService

# Sweeps
from shiptrack.services.status_reconciler import StatusReconciler
from shiptrack.services.delivery_alerts import DeliveryAlertService

# External tracking source
from shiptrack.services.tracking_client import TrackingAPIService

__all__ = [
    "AuditService",
    "AuditRecorder",
    "AuditEntry",
    "EventLogService",
    "CapacityService",
    "ShipmentService",
    "ContainerService",
    "BulkShipmentService",
    "StatusReconciler",
    "DeliveryAlertService",
    "TrackingAPIService",
]
