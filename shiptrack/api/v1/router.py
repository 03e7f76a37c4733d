from fastapi import APIRouter

from shiptrack.api.v1.endpoints import (
    shipments,
    containers,
    bulk,
    audit_logs,
    cron,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Shipments ====================
api_router.include_router(
    shipments.router,
    prefix="/shipments",
    tags=["Shipments"]
)

# ==================== Containers ====================
api_router.include_router(
    containers.router,
    prefix="/containers",
    tags=["Containers"]
)

# ==================== Bulk Operations ====================
api_router.include_router(
    bulk.router,
    prefix="/bulk",
    tags=["Bulk Operations"]
)

# ==================== Audit Logs ====================
api_router.include_router(
    audit_logs.router,
    prefix="/audit-logs",
    tags=["Audit Logs"]
)

# ==================== Sweep Triggers ====================
api_router.include_router(
    cron.router,
    prefix="/cron",
    tags=["Cron"]
)
