import pytest
from unittest.mock import AsyncMock, MagicMock

from clinic_booking.models.db_models import SlotStatus
from clinic_booking.services.realtime_service import ChangeKind, ChangeEvent, InMemoryChangeFeed
from clinic_booking.services.viewer_service import ViewerRegistry
from tests.conftest import CLINIC_ID, MONDAY, TZ, FakeGateway, at, make_booking, make_profile, settle


def make_registry(gateway, feed):
    profiles = MagicMock()
    profiles.load_profile = AsyncMock(return_value=make_profile())
    return ViewerRegistry(profiles=profiles, gateway=gateway, feed=feed, tz=TZ)


@pytest.mark.asyncio
async def test_viewers_share_bookings_through_the_feed():
    gateway = FakeGateway()
    feed = InMemoryChangeFeed()
    registry = make_registry(gateway, feed)

    wizard = await registry.open(CLINIC_ID, MONDAY, MONDAY)
    calendar = await registry.open(CLINIC_ID, MONDAY, MONDAY)
    assert await wizard.coordinator.wait_ready(1) and await calendar.coordinator.wait_ready(1)
    assert len(registry) == 2

    booking = await wizard.booking_service.request_booking(at(MONDAY, 10), "svc-60", "staff-a")
    # The database would notify every subscriber
    feed.publish(ChangeEvent(kind=ChangeKind.INSERT, record=booking.model_dump(mode="json", by_alias=True)))
    await settle()

    slots = calendar.get_availability(MONDAY, "svc-60", "staff-a", 60)
    assert slots[0].status == SlotStatus.FULL
    assert calendar.staff_calendar(MONDAY, 60)["staff-a"][0].status == SlotStatus.FULL
    assert not calendar.is_stale

    await registry.close_all()
    assert len(registry) == 0
    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_open_loads_profile_for_range_and_seeds():
    gateway = FakeGateway([make_booking("b1", at(MONDAY, 10))])
    registry = make_registry(gateway, InMemoryChangeFeed())

    session = await registry.open(CLINIC_ID, MONDAY, MONDAY)
    await session.coordinator.wait_ready(1)

    registry.profiles.load_profile.assert_awaited_once_with(CLINIC_ID, MONDAY, MONDAY)
    assert session.clinic_id == CLINIC_ID
    assert [b.id for b in session.coordinator.snapshot()] == ["b1"]
    assert registry.get(session.viewer_id) is session

    assert await registry.close(session.viewer_id)
    assert not await registry.close(session.viewer_id)
    assert registry.get(session.viewer_id) is None


@pytest.mark.asyncio
async def test_open_rejects_reversed_range():
    registry = make_registry(FakeGateway(), InMemoryChangeFeed())
    with pytest.raises(ValueError):
        await registry.open(CLINIC_ID, MONDAY, MONDAY.replace(day=1))
