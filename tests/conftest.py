"""
Pytest configuration and fixtures for the shiptrack tests.

Settings are read once at import time, so the environment is prepared
before anything from shiptrack is imported.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_TMP_DIR = Path(tempfile.mkdtemp(prefix="shiptrack-tests-"))

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'test.db'}"
os.environ["SECRET_KEY"] = "test-secret-key-for-jwt-signing"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["TRACKING_API_URL"] = ""
os.environ["TRACKING_API_KEY"] = ""

import httpx
import pytest
import pytest_asyncio

from shiptrack.core.exceptions import ExternalFetchError
from shiptrack.core.permissions import Principal
from shiptrack.core.security import create_access_token
from shiptrack.database import Base, engine, async_session_factory
from shiptrack.models import Container, Shipment
from shiptrack.services.tracking_client import TrackingInfo

CRON_SECRET = os.environ["CRON_SECRET"]


@pytest_asyncio.fixture(autouse=True)
async def database():
    """Fresh schema for every test."""
    from shiptrack import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def session():
    async with async_session_factory() as s:
        yield s


@pytest.fixture
def admin() -> Principal:
    return Principal(actor_id="admin-1", is_privileged=True)


@pytest.fixture
def customer() -> Principal:
    return Principal(actor_id="customer-1", is_privileged=False)


@pytest.fixture
def make_shipment():
    """Insert a shipment directly, bypassing the service layer."""
    counter = {"n": 0}

    async def _make(**overrides: Any) -> Shipment:
        counter["n"] += 1
        values: Dict[str, Any] = {
            "tracking_number": f"SHPTEST{counter['n']:05d}",
            "user_id": "customer-1",
            "vehicle_type": "SEDAN",
            "vehicle_make": "Toyota",
            "vehicle_model": "Camry",
            "origin": "Houston, TX",
            "destination": "Lagos, NG",
            "status": "PENDING",
            "progress": 0,
            "payment_status": "PENDING",
            "auto_status_update": True,
        }
        values.update(overrides)
        async with async_session_factory() as s:
            shipment = Shipment(**values)
            s.add(shipment)
            await s.commit()
            return shipment

    return _make


@pytest.fixture
def make_container():
    counter = {"n": 0}

    async def _make(**overrides: Any) -> Container:
        counter["n"] += 1
        values: Dict[str, Any] = {
            "container_number": f"MSCU{counter['n']:07d}",
            "max_capacity": 4,
            "current_count": 0,
            "status": "CREATED",
        }
        values.update(overrides)
        async with async_session_factory() as s:
            container = Container(**values)
            s.add(container)
            await s.commit()
            return container

    return _make


async def reload(model, entity_id):
    """Read a row back through a new session."""
    async with async_session_factory() as s:
        return await s.get(model, entity_id)


@pytest.fixture
def fetch():
    return reload


class FakeTrackingClient:
    """
    Stand-in for TrackingAPIService.

    `responses` maps a tracking number to a TrackingInfo, None, or an
    exception instance to raise.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, containers: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.containers = containers or {}
        self.calls = []

    def set_status(self, tracking_number: str, status: Optional[str], location: Optional[str] = None,
                   progress: Optional[int] = None) -> None:
        self.responses[tracking_number] = TrackingInfo(
            tracking_number=tracking_number,
            status=status,
            current_location=location,
            progress=progress,
        )

    async def fetch_status(self, tracking_number: str, shipping_line: Optional[str] = None):
        self.calls.append(tracking_number)
        response = self.responses.get(tracking_number)
        if isinstance(response, Exception):
            raise response
        return response

    async def lookup_container(self, container_number: str):
        response = self.containers.get(container_number)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def tracking_client() -> FakeTrackingClient:
    return FakeTrackingClient()


@pytest.fixture
def unreachable() -> ExternalFetchError:
    return ExternalFetchError("Tracking API unreachable: connection refused")


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def in_days(now):
    def _in(days: float) -> datetime:
        return now + timedelta(days=days)
    return _in


# ==================== API ====================

@pytest_asyncio.fixture
async def client(tracking_client):
    from shiptrack.main import app
    from shiptrack.services.tracking_client import get_tracking_client

    app.dependency_overrides[get_tracking_client] = lambda: tracking_client
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token('admin-1', role='admin')}"}


@pytest.fixture
def customer_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token('customer-1')}"}


@pytest.fixture
def other_customer_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token('customer-2')}"}


@pytest.fixture
def cron_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}
