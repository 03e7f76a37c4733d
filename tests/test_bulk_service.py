import uuid

import pytest
from sqlalchemy import select

from shiptrack.core.exceptions import ValidationError
from shiptrack.database import async_session_factory
from shiptrack.models import AuditLog, Container, Shipment, ShipmentEvent
from shiptrack.services.bulk_service import BulkAction, BulkShipmentService, validate_payload
from shiptrack.services.capacity_service import CapacityService


async def _run(action, ids, data, principal):
    async with async_session_factory() as s:
        return await BulkShipmentService(s).execute(action, ids, data, principal)


class TestValidatePayload:

    def test_status_is_case_insensitive(self):
        assert validate_payload(BulkAction.UPDATE_STATUS, {"status": "in_transit"}) == {"status": "IN_TRANSIT"}

    def test_unknown_status_rejected_with_field(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(BulkAction.UPDATE_STATUS, {"status": "TELEPORTED"})
        assert exc_info.value.details[0]["field"] == "status"

    @pytest.mark.parametrize("progress", [-1, 101, 12.5, "abc", True])
    def test_progress_out_of_range_rejected(self, progress):
        with pytest.raises(ValidationError):
            validate_payload(BulkAction.UPDATE_PROGRESS, {"progress": progress})

    def test_progress_accepts_numeric_string(self):
        assert validate_payload(BulkAction.UPDATE_PROGRESS, {"progress": "75"}) == {"progress": 75}

    def test_missing_user_rejected(self):
        with pytest.raises(ValidationError):
            validate_payload(BulkAction.ASSIGN_USER, {})

    def test_blank_location_rejected(self):
        with pytest.raises(ValidationError):
            validate_payload(BulkAction.UPDATE_LOCATION, {"current_location": "   "})

    def test_eta_must_be_iso(self):
        with pytest.raises(ValidationError):
            validate_payload(BulkAction.SET_ETA, {"estimated_delivery": "next tuesday"})

    def test_eta_parsed_as_utc(self):
        values = validate_payload(BulkAction.SET_ETA, {"estimated_delivery": "2024-07-01T10:00:00Z"})
        assert values["estimated_delivery"].tzinfo is not None

    def test_delete_and_export_need_no_payload(self):
        assert validate_payload(BulkAction.DELETE, None) == {}
        assert validate_payload(BulkAction.EXPORT, {}) == {}


@pytest.mark.asyncio
async def test_update_status_skips_missing_ids(make_shipment, admin, fetch):
    a = await make_shipment()
    c = await make_shipment()

    result = await _run(BulkAction.UPDATE_STATUS, [a.id, uuid.uuid4(), c.id], {"status": "ON_HOLD"}, admin)

    assert result.count == 2
    assert (await fetch(Shipment, a.id)).status == "ON_HOLD"
    assert (await fetch(Shipment, c.id)).status == "ON_HOLD"


@pytest.mark.asyncio
async def test_invalid_payload_writes_nothing(make_shipment, admin, fetch):
    shipment = await make_shipment(progress=10)

    with pytest.raises(ValidationError):
        await _run(BulkAction.UPDATE_PROGRESS, [shipment.id], {"progress": 150}, admin)

    assert (await fetch(Shipment, shipment.id)).progress == 10


@pytest.mark.asyncio
async def test_duplicate_ids_counted_once(make_shipment, admin):
    shipment = await make_shipment()

    result = await _run(BulkAction.ASSIGN_USER, [shipment.id, shipment.id], {"user_id": "customer-9"}, admin)

    assert result.count == 1


@pytest.mark.asyncio
async def test_each_updated_shipment_audited(make_shipment, admin):
    a = await make_shipment()
    b = await make_shipment()

    await _run(BulkAction.UPDATE_LOCATION, [a.id, b.id], {"current_location": "Port of Antwerp"}, admin)

    async with async_session_factory() as s:
        logs = (await s.execute(select(AuditLog))).scalars().all()
    assert {log.entity_id for log in logs} == {a.id, b.id}
    assert all(log.action == "BULK_CURRENT_LOCATION" for log in logs)
    assert all(log.new_values == {"current_location": "Port of Antwerp"} for log in logs)


@pytest.mark.asyncio
async def test_delete_releases_container_slots(make_shipment, make_container, admin, fetch):
    container = await make_container()
    a = await make_shipment()
    b = await make_shipment()
    kept = await make_shipment()
    async with async_session_factory() as s:
        for shipment in (a, b, kept):
            await CapacityService(s).attach(shipment.id, container.id)
        await s.commit()

    result = await _run(BulkAction.DELETE, [a.id, b.id], {}, admin)

    assert result.count == 2
    assert (await fetch(Container, container.id)).current_count == 1
    assert await fetch(Shipment, a.id) is None
    assert (await fetch(Shipment, kept.id)).container_id == container.id


@pytest.mark.asyncio
async def test_export_returns_shipments_with_events(make_shipment, admin, now, in_days):
    shipment = await make_shipment()
    async with async_session_factory() as s:
        s.add_all([
            ShipmentEvent(shipment_id=shipment.id, status="PENDING", event_time=now, source="SYSTEM"),
            ShipmentEvent(shipment_id=shipment.id, status="IN_TRANSIT", event_time=in_days(1), source="MANUAL"),
        ])
        await s.commit()

    result = await _run(BulkAction.EXPORT, [shipment.id, uuid.uuid4()], {}, admin)

    assert result.count == 1
    assert [e.status for e in result.data[0].events] == ["IN_TRANSIT", "PENDING"]
