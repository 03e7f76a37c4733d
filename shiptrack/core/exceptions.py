"""Domain errors raised by services and translated to HTTP responses in main."""
from typing import Any, Dict, List, Optional


class ShipTrackError(Exception):
    """Base class for errors with a user-visible HTTP mapping."""

    status_code: int = 500
    error_type: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "type": self.error_type}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ShipTrackError):
    """Malformed or missing input, rejected before any write."""

    status_code = 400
    error_type = "VALIDATION_ERROR"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"Invalid {field}: {message}", details=[{"field": field, "message": message}])


class PermissionDeniedError(ShipTrackError):
    status_code = 403
    error_type = "PERMISSION_DENIED"


class NotFoundError(ShipTrackError):
    """Referenced entity does not exist."""

    status_code = 404
    error_type = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message)


class ConflictError(ShipTrackError):
    """Unique constraint would be violated (container number, VIN, tracking number)."""

    status_code = 409
    error_type = "CONFLICT"


class CapacityExceededError(ShipTrackError):
    """Attach attempted against a container with no free slot."""

    status_code = 409
    error_type = "CAPACITY_EXCEEDED"

    def __init__(self, container_number: str, max_capacity: int):
        self.container_number = container_number
        self.max_capacity = max_capacity
        super().__init__(
            f"Container {container_number} is full ({max_capacity}/{max_capacity})"
        )


class ExternalFetchError(ShipTrackError):
    """Tracking source unreachable, timed out, or returned an unusable payload."""

    status_code = 502
    error_type = "EXTERNAL_FETCH_ERROR"

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class AuditWriteError(ShipTrackError):
    """Audit entry could not be persisted. Logged by the recorder, never raised to callers."""

    error_type = "AUDIT_WRITE_ERROR"
