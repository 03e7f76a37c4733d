"""Consumers of delivery alert transitions."""
import logging
from typing import TYPE_CHECKING, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from shiptrack.services.delivery_alerts import AlertTransition

logger = logging.getLogger(__name__)


class AlertNotifier(Protocol):
    async def dispatch(self, transitions: Sequence["AlertTransition"]) -> None:
        ...


class LoggingAlertNotifier:
    """Writes one log line per transition. Escalations (OVERDUE) log at warning."""

    async def dispatch(self, transitions: Sequence["AlertTransition"]) -> None:
        for t in transitions:
            message = (
                f"Delivery alert {t.old_status} -> {t.new_status} for shipment "
                f"{t.tracking_number} (owner {t.user_id}, ETA {t.estimated_delivery})"
            )
            if t.new_status == "OVERDUE":
                logger.warning(message)
            else:
                logger.info(message)


async def dispatch_alert_transitions(
    transitions: Sequence["AlertTransition"],
    notifier: Optional[AlertNotifier] = None,
) -> None:
    """Hand a sweep's transitions to the configured notifier."""
    if not transitions:
        return
    await (notifier or LoggingAlertNotifier()).dispatch(transitions)
