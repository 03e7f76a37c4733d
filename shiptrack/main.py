from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from shiptrack.config import settings
from shiptrack.api.v1.router import api_router
from shiptrack.core.exceptions import ShipTrackError
from shiptrack.database import init_db, get_db_session
from shiptrack.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status, scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Configure logging
    - Create tables
    - Start background scheduler (unless SCHEDULER_ENABLED is off)
    """
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    else:
        logger.info("Background scheduler disabled")

    yield

    # Shutdown
    shutdown_scheduler()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Shipments", "description": "Vehicle shipments, manual tracking events and container detach"},
    {"name": "Containers", "description": "Consolidation containers, capacity, tracking history and invoices"},
    {"name": "Bulk Operations", "description": "One action applied to many shipments"},
    {"name": "Audit Logs", "description": "Who changed what, newest first"},
    {"name": "Cron", "description": "Sweep triggers for external schedulers (Bearer CRON_SECRET)"},
]

API_DESCRIPTION = """
## ShipTrack API

Keeps vehicle shipments and shipping containers in sync with an external
tracking source.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Validation failed |
| 401 | Unauthorized - Invalid/expired token or cron secret |
| 403 | Forbidden - Admin role required or not the owner |
| 404 | Not Found - Resource doesn't exist |
| 409 | Conflict - Duplicate resource or container full |
| 502 | Bad Gateway - Tracking source unavailable |
| 500 | Internal Server Error |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(ShipTrackError)
async def shiptrack_exception_handler(request: Request, exc: ShipTrackError):
    """Domain errors carry their own status code and body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters are reported as 400 with per-field details."""
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "type": "VALIDATION_ERROR", "details": details},
    )


# Global exception handler for anything the services did not anticipate
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": type(exc).__name__},
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown",
            "scheduler": "running" if scheduler.running else "stopped",
            "tracking_api": "configured" if settings.tracking_api_enabled else "not configured",
        },
        "jobs": get_job_status(),
    }

    # Check database connectivity
    try:
        async with get_db_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
