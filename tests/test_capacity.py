import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from shiptrack.core.exceptions import CapacityExceededError, NotFoundError, ValidationError
from shiptrack.database import async_session_factory
from shiptrack.models import Container, Shipment
from shiptrack.schemas.container import ContainerUpdate
from shiptrack.services.capacity_service import CapacityService
from shiptrack.services.container_service import ContainerService


async def _attach(shipment_id, container_id):
    async with async_session_factory() as s:
        container = await CapacityService(s).attach(shipment_id, container_id)
        await s.commit()
        return container


async def _detach(shipment_id):
    async with async_session_factory() as s:
        left = await CapacityService(s).detach(shipment_id)
        await s.commit()
        return left


@pytest.mark.asyncio
async def test_attach_takes_a_slot(make_shipment, make_container, fetch):
    container = await make_container()
    shipment = await make_shipment()

    result = await _attach(shipment.id, container.id)

    assert result.current_count == 1
    assert (await fetch(Shipment, shipment.id)).container_id == container.id


@pytest.mark.asyncio
async def test_fifth_attach_to_full_container_fails(make_shipment, make_container, fetch):
    container = await make_container(max_capacity=4)
    for _ in range(4):
        shipment = await make_shipment()
        await _attach(shipment.id, container.id)

    fifth = await make_shipment()
    with pytest.raises(CapacityExceededError) as exc_info:
        await _attach(fifth.id, container.id)

    assert exc_info.value.status_code == 409
    assert (await fetch(Container, container.id)).current_count == 4
    assert (await fetch(Shipment, fifth.id)).container_id is None


@pytest.mark.asyncio
async def test_attach_to_same_container_is_noop(make_shipment, make_container, fetch):
    container = await make_container()
    shipment = await make_shipment()

    await _attach(shipment.id, container.id)
    await _attach(shipment.id, container.id)

    assert (await fetch(Container, container.id)).current_count == 1


@pytest.mark.asyncio
async def test_reattach_moves_the_slot(make_shipment, make_container, fetch):
    first = await make_container()
    second = await make_container()
    shipment = await make_shipment()

    await _attach(shipment.id, first.id)
    await _attach(shipment.id, second.id)

    assert (await fetch(Container, first.id)).current_count == 0
    assert (await fetch(Container, second.id)).current_count == 1
    assert (await fetch(Shipment, shipment.id)).container_id == second.id


@pytest.mark.asyncio
async def test_failed_move_keeps_original_slot(make_shipment, make_container, fetch):
    home = await make_container()
    full = await make_container(max_capacity=1)
    occupant = await make_shipment()
    await _attach(occupant.id, full.id)
    shipment = await make_shipment()
    await _attach(shipment.id, home.id)

    with pytest.raises(CapacityExceededError):
        await _attach(shipment.id, full.id)

    assert (await fetch(Container, home.id)).current_count == 1
    assert (await fetch(Container, full.id)).current_count == 1
    assert (await fetch(Shipment, shipment.id)).container_id == home.id


@pytest.mark.asyncio
async def test_detach_frees_slot_and_is_idempotent(make_shipment, make_container, fetch):
    container = await make_container()
    shipment = await make_shipment()
    await _attach(shipment.id, container.id)

    assert await _detach(shipment.id) == container.id
    assert await _detach(shipment.id) is None

    assert (await fetch(Container, container.id)).current_count == 0
    assert (await fetch(Shipment, shipment.id)).container_id is None


@pytest.mark.asyncio
async def test_count_stays_within_bounds(make_shipment, make_container, fetch):
    container = await make_container(max_capacity=2)
    shipments = [await make_shipment() for _ in range(3)]

    for step in ["a0", "a1", "a2", "d0", "a2", "d1", "d1", "a0", "d2", "d0"]:
        op, index = step[0], int(step[1])
        if op == "a":
            try:
                await _attach(shipments[index].id, container.id)
            except CapacityExceededError:
                pass
        else:
            await _detach(shipments[index].id)

        count = (await fetch(Container, container.id)).current_count
        assert 0 <= count <= 2

    assert (await fetch(Container, container.id)).current_count == 0


@pytest.mark.asyncio
async def test_attach_unknown_container(make_shipment):
    shipment = await make_shipment()
    with pytest.raises(NotFoundError):
        await _attach(shipment.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_release_many_groups_by_container(make_shipment, make_container, fetch):
    first = await make_container()
    second = await make_container()
    a, b, c = await make_shipment(), await make_shipment(), await make_shipment()
    await _attach(a.id, first.id)
    await _attach(b.id, first.id)
    await _attach(c.id, second.id)

    async with async_session_factory() as s:
        released = await CapacityService(s).release_many([a.id, b.id, c.id, uuid.uuid4()])
        await s.commit()

    assert released == 3
    assert (await fetch(Container, first.id)).current_count == 0
    assert (await fetch(Container, second.id)).current_count == 0


@pytest.mark.asyncio
async def test_list_active_filters_after_fetch(make_container):
    open_one = await make_container()
    await make_container(max_capacity=1, current_count=1)
    await make_container(status="CLOSED")
    loaded = await make_container(status="LOADED", current_count=2)

    async with async_session_factory() as s:
        containers, total = await CapacityService(s).list_active(page=1, size=1)

    assert total == 2
    assert len(containers) == 1
    assert containers[0].id in {open_one.id, loaded.id}


async def _members(container_id):
    async with async_session_factory() as s:
        return await s.scalar(select(func.count(Shipment.id)).where(Shipment.container_id == container_id))


@pytest.mark.asyncio
async def test_detach_with_outdated_view_releases_one_slot(make_shipment, make_container, fetch):
    container = await make_container()
    first, second = await make_shipment(), await make_shipment()
    await _attach(first.id, container.id)
    await _attach(second.id, container.id)

    async with async_session_factory() as s:
        await s.get(Shipment, first.id)
        assert await _detach(first.id) == container.id

        assert await CapacityService(s).detach(first.id) is None
        await s.commit()

    assert (await fetch(Container, container.id)).current_count == 1
    assert await _members(container.id) == 1


@pytest.mark.asyncio
async def test_move_with_outdated_view_frees_the_actual_container(make_shipment, make_container, fetch):
    origin, elsewhere, target = await make_container(), await make_container(), await make_container()
    shipment = await make_shipment()
    await _attach(shipment.id, origin.id)

    async with async_session_factory() as s:
        await s.get(Shipment, shipment.id)
        await _attach(shipment.id, elsewhere.id)

        await CapacityService(s).attach(shipment.id, target.id)
        await s.commit()

    assert (await fetch(Shipment, shipment.id)).container_id == target.id
    for container, expected in ((origin, 0), (elsewhere, 0), (target, 1)):
        assert (await fetch(Container, container.id)).current_count == expected
        assert await _members(container.id) == expected


@pytest.mark.asyncio
async def test_duplicate_attach_with_outdated_view_keeps_one_slot(make_shipment, make_container, fetch):
    container = await make_container()
    shipment = await make_shipment()

    async with async_session_factory() as s:
        await s.get(Shipment, shipment.id)
        await _attach(shipment.id, container.id)

        await CapacityService(s).attach(shipment.id, container.id)
        await s.commit()

    assert (await fetch(Container, container.id)).current_count == 1
    assert await _members(container.id) == 1


@pytest.mark.asyncio
async def test_concurrent_attaches_cannot_share_last_slot(make_shipment, make_container, fetch):
    container = await make_container(max_capacity=2)
    occupant = await make_shipment()
    await _attach(occupant.id, container.id)
    contenders = [await make_shipment(), await make_shipment()]

    loaded = [asyncio.Event(), asyncio.Event()]
    first_finished = asyncio.Event()

    async def attempt(index):
        async with async_session_factory() as s:
            # Both sessions see one free slot before either writes
            await s.get(Container, container.id)
            await s.get(Shipment, contenders[index].id)
            loaded[index].set()
            await asyncio.gather(*(event.wait() for event in loaded))
            # SQLite answers overlapping write transactions with "database
            # is locked", so the second write starts once the first commits
            if index == 1:
                await first_finished.wait()
            try:
                await CapacityService(s).attach(contenders[index].id, container.id)
                await s.commit()
                return True
            except CapacityExceededError:
                await s.rollback()
                return False
            finally:
                first_finished.set()

    results = await asyncio.gather(attempt(0), attempt(1))

    assert results == [True, False]
    assert (await fetch(Container, container.id)).current_count == 2
    assert await _members(container.id) == 2


@pytest.mark.asyncio
async def test_capacity_shrink_checks_current_count_at_write(make_shipment, make_container, admin, fetch):
    container = await make_container(max_capacity=4)
    await _attach((await make_shipment()).id, container.id)

    async with async_session_factory() as s:
        await s.get(Container, container.id)
        for _ in range(2):
            await _attach((await make_shipment()).id, container.id)

        with pytest.raises(ValidationError) as exc_info:
            await ContainerService(s).update_container(container.id, ContainerUpdate(max_capacity=2), admin)
        await s.rollback()

    assert exc_info.value.details[0]["field"] == "max_capacity"
    stored = await fetch(Container, container.id)
    assert stored.max_capacity == 4
    assert stored.current_count == 3
