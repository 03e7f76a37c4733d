from dataclasses import dataclass
from typing import Any, Dict

from shiptrack.core.exceptions import PermissionDeniedError


ADMIN_ROLE = "admin"
SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class Principal:
    """
    Caller identity as seen by services.

    `actor_id` is opaque and only used for ownership checks and audit
    attribution. `is_privileged` is true for the admin role.
    """
    actor_id: str
    is_privileged: bool = False

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Principal":
        role = str(claims.get("role", "")).lower()
        return cls(actor_id=str(claims["sub"]), is_privileged=role == ADMIN_ROLE)

    @classmethod
    def system(cls) -> "Principal":
        return cls(actor_id=SYSTEM_ACTOR, is_privileged=True)


class PermissionChecker:
    """Ownership and privilege checks for shipment-scoped resources."""

    def __init__(self, principal: Principal):
        self.principal = principal

    def is_admin(self) -> bool:
        return self.principal.is_privileged

    def can_view_owned(self, owner_id: str) -> bool:
        """Admins see everything, other callers only what they own."""
        return self.is_admin() or owner_id == self.principal.actor_id

    def require_admin(self) -> None:
        if not self.is_admin():
            raise PermissionDeniedError("Admin privileges required")

    def require_owner_or_admin(self, owner_id: str) -> None:
        if not self.can_view_owned(owner_id):
            raise PermissionDeniedError("Not allowed to access this resource")
