from shiptrack.models.audit_log import AuditLog, AuditEntityType
from shiptrack.models.container import (
    Container,
    ContainerStatus,
    ContainerTrackingEvent,
    ContainerInvoice,
    InvoiceStatus,
    LOADABLE_STATUSES,
)
from shiptrack.models.shipment import (
    Shipment,
    ShipmentEvent,
    ShipmentStatus,
    DeliveryAlertStatus,
    PaymentStatus,
    EventSource,
    TERMINAL_STATUSES,
)

__all__ = [
    "AuditLog",
    "AuditEntityType",
    "Container",
    "ContainerStatus",
    "ContainerTrackingEvent",
    "ContainerInvoice",
    "InvoiceStatus",
    "LOADABLE_STATUSES",
    "Shipment",
    "ShipmentEvent",
    "ShipmentStatus",
    "DeliveryAlertStatus",
    "PaymentStatus",
    "EventSource",
    "TERMINAL_STATUSES",
]
