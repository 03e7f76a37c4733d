from typing import Annotated, Optional
import hmac
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from shiptrack.config import settings
from shiptrack.database import get_db
from shiptrack.core.security import verify_access_token
from shiptrack.core.permissions import Principal, PermissionChecker
from shiptrack.services.tracking_client import TrackingAPIService, get_tracking_client


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()
cron_security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """
    Dependency to get the calling principal.
    Validates the JWT token; the identity provider owns the user records.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    return Principal.from_claims(payload)


async def require_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """
    Dependency that rejects non-admin callers.

    Usage:
        @router.get("", dependencies=[Depends(require_admin)])
    """
    PermissionChecker(principal).require_admin()
    return principal


async def verify_cron_secret(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(cron_security)],
) -> None:
    """Sweep triggers authenticate with `Authorization: Bearer <CRON_SECRET>`."""
    expected = settings.CRON_SECRET
    supplied = credentials.credentials if credentials else ""
    if not expected or not hmac.compare_digest(supplied.encode(), expected.encode()):
        logger.warning("Rejected cron trigger with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
TrackingClient = Annotated[TrackingAPIService, Depends(get_tracking_client)]
