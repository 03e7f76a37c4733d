import uuid

import pytest

from shiptrack.models import Container, Shipment


SHIPMENTS = "/api/v1/shipments"


def _payload(**overrides):
    payload = {
        "user_id": "customer-1",
        "vehicle_type": "SUV",
        "vehicle_make": "Ford",
        "vehicle_model": "Explorer",
        "vehicle_year": 2021,
        "vehicle_vin": "1fmsk8dh5mga12345",
        "origin": "Baltimore, MD",
        "destination": "Tema, GH",
        "price": 1850.0,
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_shipment(client, admin_headers):
    response = await client.post(SHIPMENTS, json=_payload(), headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["tracking_number"].startswith("SHP")
    assert body["vehicle_vin"] == "1FMSK8DH5MGA12345"
    assert body["status"] == "PENDING"
    assert body["delivery_alert_status"] == "ON_TIME"
    assert len(body["events"]) == 1
    assert body["events"][0]["description"] == "Shipment created"


@pytest.mark.asyncio
async def test_create_with_initial_events(client, admin_headers):
    payload = _payload(tracking_events=[
        {"status": "PICKUP_SCHEDULED", "location": "Baltimore, MD", "event_time": "2024-05-01T09:00:00Z"},
        {"status": "PICKUP_COMPLETED", "location": "Baltimore, MD", "event_time": "2024-05-02T09:00:00Z"},
    ])

    response = await client.post(SHIPMENTS, json=payload, headers=admin_headers)

    assert response.status_code == 201
    assert [e["status"] for e in response.json()["events"]] == ["PICKUP_COMPLETED", "PICKUP_SCHEDULED"]


@pytest.mark.asyncio
async def test_create_requires_admin(client, customer_headers):
    response = await client.post(SHIPMENTS, json=_payload(), headers=customer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_requires_token(client):
    response = await client.post(SHIPMENTS, json=_payload())
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_duplicate_vin_conflicts(client, admin_headers):
    await client.post(SHIPMENTS, json=_payload(), headers=admin_headers)

    response = await client.post(SHIPMENTS, json=_payload(), headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["type"] == "CONFLICT"


@pytest.mark.asyncio
async def test_in_transit_requires_route(client, admin_headers):
    response = await client.post(
        SHIPMENTS,
        json=_payload(status="in_transit", current_location="X"),
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["type"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_missing_vehicle_type_rejected(client, admin_headers):
    payload = _payload()
    del payload["vehicle_type"]

    response = await client.post(SHIPMENTS, json=payload, headers=admin_headers)

    assert response.status_code == 400
    assert any(d["field"] == "vehicle_type" for d in response.json()["details"])


@pytest.mark.asyncio
async def test_create_into_container(client, admin_headers, make_container, fetch):
    container = await make_container()

    response = await client.post(
        SHIPMENTS, json=_payload(container_id=str(container.id)), headers=admin_headers
    )

    assert response.status_code == 201
    assert response.json()["container_id"] == str(container.id)
    assert (await fetch(Container, container.id)).current_count == 1


@pytest.mark.asyncio
async def test_customers_only_list_their_own(client, customer_headers, admin_headers, make_shipment):
    mine = await make_shipment(user_id="customer-1")
    await make_shipment(user_id="customer-2")

    response = await client.get(SHIPMENTS, headers=customer_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == str(mine.id)

    response = await client.get(SHIPMENTS, headers=admin_headers)
    assert response.json()["total"] == 2


@pytest.mark.asyncio
async def test_list_pagination(client, admin_headers, make_shipment):
    for _ in range(5):
        await make_shipment()

    body = (await client.get(SHIPMENTS, params={"page": 2, "size": 2}, headers=admin_headers)).json()

    assert body["total"] == 5
    assert body["pages"] == 3
    assert len(body["items"]) == 2


@pytest.mark.asyncio
async def test_get_enforces_ownership(client, customer_headers, other_customer_headers, make_shipment):
    shipment = await make_shipment(user_id="customer-1")

    assert (await client.get(f"{SHIPMENTS}/{shipment.id}", headers=customer_headers)).status_code == 200
    assert (await client.get(f"{SHIPMENTS}/{shipment.id}", headers=other_customer_headers)).status_code == 403


@pytest.mark.asyncio
async def test_get_unknown_is_404(client, admin_headers):
    response = await client.get(f"{SHIPMENTS}/{uuid.uuid4()}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_progress_bounds(client, admin_headers, make_shipment):
    shipment = await make_shipment()

    bad = await client.put(f"{SHIPMENTS}/{shipment.id}", json={"progress": 150}, headers=admin_headers)
    good = await client.put(f"{SHIPMENTS}/{shipment.id}", json={"progress": 55}, headers=admin_headers)

    assert bad.status_code == 400
    assert good.status_code == 200
    assert good.json()["progress"] == 55


@pytest.mark.asyncio
async def test_update_ignores_alert_status(client, admin_headers, make_shipment, fetch):
    shipment = await make_shipment()

    response = await client.put(
        f"{SHIPMENTS}/{shipment.id}",
        json={"delivery_alert_status": "OVERDUE", "notes": "call before delivery"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    stored = await fetch(Shipment, shipment.id)
    assert stored.delivery_alert_status == "ON_TIME"
    assert stored.notes == "call before delivery"


@pytest.mark.asyncio
async def test_update_container_moves_slot(client, admin_headers, make_shipment, make_container, fetch):
    first = await make_container()
    second = await make_container()
    shipment = await make_shipment()

    await client.put(f"{SHIPMENTS}/{shipment.id}", json={"container_id": str(first.id)}, headers=admin_headers)
    response = await client.put(
        f"{SHIPMENTS}/{shipment.id}", json={"container_id": str(second.id)}, headers=admin_headers
    )

    assert response.status_code == 200
    assert (await fetch(Container, first.id)).current_count == 0
    assert (await fetch(Container, second.id)).current_count == 1

    await client.put(f"{SHIPMENTS}/{shipment.id}", json={"container_id": None}, headers=admin_headers)
    assert (await fetch(Container, second.id)).current_count == 0


@pytest.mark.asyncio
async def test_delete_releases_slot(client, admin_headers, make_shipment, make_container, fetch):
    container = await make_container()
    shipment = await make_shipment()
    await client.post(f"/api/v1/containers/{container.id}/shipments/{shipment.id}", headers=admin_headers)

    response = await client.delete(f"{SHIPMENTS}/{shipment.id}", headers=admin_headers)

    assert response.status_code == 200
    assert await fetch(Shipment, shipment.id) is None
    assert (await fetch(Container, container.id)).current_count == 0


@pytest.mark.asyncio
async def test_manual_event_with_canonical_label_moves_status(client, admin_headers, make_shipment, fetch):
    shipment = await make_shipment()

    response = await client.post(
        f"{SHIPMENTS}/{shipment.id}/events",
        json={"status": "at_port", "location": "Port of Baltimore"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    assert response.json()["source"] == "MANUAL"
    assert (await fetch(Shipment, shipment.id)).status == "AT_PORT"


@pytest.mark.asyncio
async def test_manual_event_with_free_text_keeps_status(client, admin_headers, make_shipment, fetch):
    shipment = await make_shipment()

    response = await client.post(
        f"{SHIPMENTS}/{shipment.id}/events",
        json={"status": "Photos taken at yard", "location": "Baltimore, MD"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    assert (await fetch(Shipment, shipment.id)).status == "PENDING"

    events = (await client.get(f"{SHIPMENTS}/{shipment.id}/events", headers=admin_headers)).json()
    assert [e["status"] for e in events] == ["Photos taken at yard"]


@pytest.mark.asyncio
async def test_manual_event_requires_location(client, admin_headers, make_shipment):
    shipment = await make_shipment()

    response = await client.post(
        f"{SHIPMENTS}/{shipment.id}/events", json={"status": "AT_PORT"}, headers=admin_headers
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_manual_event_not_found_before_forbidden(client, customer_headers, make_shipment):
    shipment = await make_shipment()

    missing = await client.post(
        f"{SHIPMENTS}/{uuid.uuid4()}/events", json={"status": "X", "location": "Y"}, headers=customer_headers
    )
    forbidden = await client.post(
        f"{SHIPMENTS}/{shipment.id}/events", json={"status": "X", "location": "Y"}, headers=customer_headers
    )

    assert missing.status_code == 404
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_detach_endpoint(client, admin_headers, make_shipment, make_container, fetch):
    container = await make_container()
    shipment = await make_shipment()
    await client.post(f"/api/v1/containers/{container.id}/shipments/{shipment.id}", headers=admin_headers)

    response = await client.delete(f"{SHIPMENTS}/{shipment.id}/container", headers=admin_headers)
    again = await client.delete(f"{SHIPMENTS}/{shipment.id}/container", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["container_id"] is None
    assert again.status_code == 200
    assert (await fetch(Container, container.id)).current_count == 0
