import uuid

import pytest

from shiptrack.core.exceptions import ExternalFetchError
from shiptrack.models import Container, Shipment


CONTAINERS = "/api/v1/containers"


@pytest.mark.asyncio
async def test_create_container_defaults(client, admin_headers):
    response = await client.post(CONTAINERS, json={"container_number": " mscu1234567 "}, headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["container_number"] == "MSCU1234567"
    assert body["max_capacity"] == 4
    assert body["current_count"] == 0
    assert body["status"] == "CREATED"
    assert body["is_active"] is True


@pytest.mark.asyncio
async def test_duplicate_container_number(client, admin_headers):
    await client.post(CONTAINERS, json={"container_number": "MSCU1234567"}, headers=admin_headers)

    response = await client.post(CONTAINERS, json={"container_number": "mscu1234567"}, headers=admin_headers)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_containers_are_admin_only(client, customer_headers):
    response = await client.get(CONTAINERS, headers=customer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_attach_until_full(client, admin_headers, make_container, make_shipment, fetch):
    container = await make_container(max_capacity=2)
    shipments = [await make_shipment() for _ in range(3)]

    responses = [
        await client.post(f"{CONTAINERS}/{container.id}/shipments/{s.id}", headers=admin_headers)
        for s in shipments
    ]

    assert [r.status_code for r in responses] == [200, 200, 409]
    assert responses[2].json()["type"] == "CAPACITY_EXCEEDED"
    assert (await fetch(Container, container.id)).current_count == 2
    assert (await fetch(Shipment, shipments[2].id)).container_id is None


@pytest.mark.asyncio
async def test_attach_unknown_shipment(client, admin_headers, make_container):
    container = await make_container()

    response = await client.post(f"{CONTAINERS}/{container.id}/shipments/{uuid.uuid4()}", headers=admin_headers)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_container_with_shipments(client, admin_headers, make_container, make_shipment):
    container = await make_container()
    shipment = await make_shipment()
    await client.post(f"{CONTAINERS}/{container.id}/shipments/{shipment.id}", headers=admin_headers)

    body = (await client.get(f"{CONTAINERS}/{container.id}", headers=admin_headers)).json()

    assert body["current_count"] == 1
    assert [s["id"] for s in body["shipments"]] == [str(shipment.id)]
    assert body["invoices"] == []


@pytest.mark.asyncio
async def test_capacity_cannot_drop_below_count(client, admin_headers, make_container):
    container = await make_container(max_capacity=4, current_count=3)

    response = await client.put(f"{CONTAINERS}/{container.id}", json={"max_capacity": 2}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "max_capacity"


@pytest.mark.asyncio
async def test_update_location_stamps_time(client, admin_headers, make_container):
    container = await make_container()

    response = await client.put(
        f"{CONTAINERS}/{container.id}",
        json={"current_location": "Port of Antwerp", "status": "in_transit"},
        headers=admin_headers,
    )

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "IN_TRANSIT"
    assert body["last_location_update"] is not None


@pytest.mark.asyncio
async def test_active_only_listing(client, admin_headers, make_container):
    await make_container()
    await make_container(max_capacity=1, current_count=1)
    await make_container(status="ARRIVED_PORT")

    body = (await client.get(CONTAINERS, params={"active_only": True}, headers=admin_headers)).json()
    everything = (await client.get(CONTAINERS, headers=admin_headers)).json()

    assert body["total"] == 1
    assert everything["total"] == 3


@pytest.mark.asyncio
async def test_delete_container_detaches_shipments(client, admin_headers, make_container, make_shipment, fetch):
    container = await make_container()
    shipment = await make_shipment()
    await client.post(f"{CONTAINERS}/{container.id}/shipments/{shipment.id}", headers=admin_headers)
    await client.post(
        f"{CONTAINERS}/{container.id}/tracking",
        json={"status": "LOADED", "event_date": "2024-06-01T08:00:00Z"},
        headers=admin_headers,
    )

    response = await client.delete(f"{CONTAINERS}/{container.id}", headers=admin_headers)

    assert response.status_code == 200
    assert await fetch(Container, container.id) is None
    survivor = await fetch(Shipment, shipment.id)
    assert survivor is not None
    assert survivor.container_id is None


@pytest.mark.asyncio
async def test_tracking_event_moves_container(client, admin_headers, make_container, fetch):
    container = await make_container()

    response = await client.post(
        f"{CONTAINERS}/{container.id}/tracking",
        json={"status": "Arrived", "location": "Port of Tema", "event_date": "2024-06-10T08:00:00Z", "source": "api"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    assert response.json()["source"] == "API"
    stored = await fetch(Container, container.id)
    assert stored.current_location == "Port of Tema"
    assert stored.last_location_update is not None


@pytest.mark.asyncio
async def test_tracking_list_limit(client, admin_headers, make_container):
    container = await make_container()
    for day in range(1, 5):
        await client.post(
            f"{CONTAINERS}/{container.id}/tracking",
            json={"status": f"Day {day}", "event_date": f"2024-06-0{day}T08:00:00Z"},
            headers=admin_headers,
        )

    events = (await client.get(
        f"{CONTAINERS}/{container.id}/tracking", params={"limit": 2}, headers=admin_headers
    )).json()

    assert [e["status"] for e in events] == ["Day 4", "Day 3"]


@pytest.mark.asyncio
async def test_tracking_event_requires_date(client, admin_headers, make_container):
    container = await make_container()

    response = await client.post(f"{CONTAINERS}/{container.id}/tracking", json={"status": "LOADED"}, headers=admin_headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_invoice_totals(client, admin_headers, make_container):
    container = await make_container()
    invoices = [
        {"invoice_number": "INV-1", "amount": "1200.00", "invoice_date": "2024-06-01", "status": "paid"},
        {"invoice_number": "INV-2", "amount": "300.50", "invoice_date": "2024-06-02", "status": "SENT"},
        {"invoice_number": "INV-3", "amount": "99.50", "invoice_date": "2024-06-03", "status": "CANCELLED"},
        {"invoice_number": "INV-4", "amount": "200.00", "invoice_date": "2024-06-04"},
    ]
    for invoice in invoices:
        response = await client.post(f"{CONTAINERS}/{container.id}/invoices", json=invoice, headers=admin_headers)
        assert response.status_code == 201

    body = (await client.get(f"{CONTAINERS}/{container.id}/invoices", headers=admin_headers)).json()

    assert [i["invoice_number"] for i in body["items"]] == ["INV-4", "INV-3", "INV-2", "INV-1"]
    assert body["totals"] == {"total": 1800.0, "paid": 1200.0, "outstanding": 500.5}


@pytest.mark.asyncio
async def test_invoice_amount_must_be_positive(client, admin_headers, make_container):
    container = await make_container()

    response = await client.post(
        f"{CONTAINERS}/{container.id}/invoices",
        json={"invoice_number": "INV-0", "amount": 0, "invoice_date": "2024-06-01"},
        headers=admin_headers,
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_tracking_lookup(client, admin_headers, tracking_client):
    tracking_client.containers["MSCU7654321"] = {"container_number": "MSCU7654321", "status": "On vessel"}

    found = await client.get(
        f"{CONTAINERS}/tracking/lookup", params={"container_number": "mscu7654321"}, headers=admin_headers
    )
    unknown = await client.get(
        f"{CONTAINERS}/tracking/lookup", params={"container_number": "TGHU0000001"}, headers=admin_headers
    )

    assert found.status_code == 200
    assert found.json()["tracking_data"]["status"] == "On vessel"
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_tracking_lookup_upstream_failure(client, admin_headers, tracking_client):
    tracking_client.containers["MSCU7654321"] = ExternalFetchError("Tracking API returned 503", upstream_status=503)

    response = await client.get(
        f"{CONTAINERS}/tracking/lookup", params={"container_number": "MSCU7654321"}, headers=admin_headers
    )

    assert response.status_code == 502
    assert response.json()["type"] == "EXTERNAL_FETCH_ERROR"
