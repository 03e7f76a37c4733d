"""
External tracking source client.

The carrier API is a black box: GET {TRACKING_API_URL}/track/{number}
returns best-effort JSON with a free-text status, an optional location and
an optional progress percentage, plus an optional list of events.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from shiptrack.config import settings
from shiptrack.core.exceptions import ExternalFetchError

logger = logging.getLogger(__name__)


@dataclass
class ExternalTrackingEvent:
    status: str
    location: str
    timestamp: Optional[str] = None
    description: Optional[str] = None
    vessel_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class TrackingInfo:
    """Latest signal for one tracking number. Any field may be missing."""
    tracking_number: str
    status: Optional[str] = None
    current_location: Optional[str] = None
    progress: Optional[int] = None
    events: List[ExternalTrackingEvent] = field(default_factory=list)


def _parse_progress(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        progress = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return max(0, min(100, progress))


def _parse_events(data: Dict) -> List[ExternalTrackingEvent]:
    raw_events = data.get("events") or data.get("trackingEvents") or []
    events = []
    for event in raw_events:
        if not isinstance(event, dict):
            continue
        events.append(ExternalTrackingEvent(
            status=event.get("status") or event.get("eventType") or "Unknown",
            location=event.get("location") or event.get("place") or "",
            timestamp=event.get("timestamp") or event.get("eventDate"),
            description=event.get("description") or event.get("details"),
            vessel_name=event.get("vessel") or event.get("vesselName"),
            latitude=event.get("latitude", event.get("lat")),
            longitude=event.get("longitude", event.get("lng")),
        ))
    return events


class TrackingAPIService:
    """
    Client for the external tracking API.

    Usage:
        service = TrackingAPIService()
        info = await service.fetch_status("SHP20240101ABC123")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.TRACKING_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.TRACKING_API_KEY
        self.timeout = timeout or settings.TRACKING_API_TIMEOUT
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        shipping_line: Optional[str] = None,
    ) -> Optional[Dict]:
        """
        Make an authenticated request to the tracking API.

        Returns None on 404, the decoded JSON body otherwise.
        """
        if not self.is_configured:
            raise ExternalFetchError("Tracking API is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if shipping_line:
            headers["X-Shipping-Line"] = shipping_line

        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method.upper(), url, headers=headers, params=params)
        except httpx.TimeoutException as e:
            raise ExternalFetchError(f"Tracking API timed out for {endpoint}") from e
        except httpx.HTTPError as e:
            raise ExternalFetchError(f"Tracking API unreachable: {e}") from e

        if response.status_code == 404:
            return None

        if response.status_code >= 400:
            logger.error(f"Tracking API error: {response.status_code} - {response.text}")
            raise ExternalFetchError(
                f"Tracking API returned {response.status_code}",
                upstream_status=response.status_code,
            )

        if not response.text:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise ExternalFetchError("Tracking API returned malformed JSON") from e
        if not isinstance(data, dict):
            raise ExternalFetchError("Tracking API returned an unexpected payload")
        return data

    async def fetch_status(self, tracking_number: str, shipping_line: Optional[str] = None) -> Optional[TrackingInfo]:
        """
        Latest status signal for a shipment.

        Returns None when the source has nothing for this number.

        Raises:
            ExternalFetchError: source unreachable, timed out, or malformed
        """
        data = await self._request("GET", f"/track/{tracking_number}", shipping_line=shipping_line)
        if not data:
            return None

        events = _parse_events(data)
        latest = events[0] if events else None

        status = data.get("status") or data.get("currentStatus") or (latest.status if latest else None)
        location = (
            data.get("currentLocation")
            or data.get("location")
            or (latest.location if latest and latest.location else None)
        )
        return TrackingInfo(
            tracking_number=tracking_number,
            status=status,
            current_location=location,
            progress=_parse_progress(data.get("progress")),
            events=events,
        )

    async def lookup_container(self, container_number: str) -> Optional[Dict[str, Any]]:
        """Container voyage details as reported by the shipping line, or None if unknown."""
        data = await self._request("GET", f"/containers/{container_number}")
        if not data:
            return None

        events = _parse_events(data)
        return {
            "container_number": data.get("containerNumber", container_number),
            "status": data.get("status"),
            "current_location": data.get("currentLocation") or data.get("location"),
            "vessel_name": data.get("vesselName") or data.get("vessel"),
            "voyage_number": data.get("voyageNumber"),
            "shipping_line": data.get("shippingLine"),
            "loading_port": data.get("loadingPort"),
            "destination_port": data.get("destinationPort"),
            "estimated_arrival": data.get("estimatedArrival") or data.get("eta"),
            "events": [asdict(e) for e in events],
        }


def get_tracking_client() -> TrackingAPIService:
    """FastAPI dependency / default factory for the tracking client."""
    return TrackingAPIService()
