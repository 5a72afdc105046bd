"""Navigation module: command dispatch and republishing of session output on the bus."""

from __future__ import annotations

import asyncio

import pytest

from carnav.event_bus import (
    EventBus,
    TOPIC_NAV_CAMERA,
    TOPIC_NAV_COMMAND,
    TOPIC_NAV_ERROR,
    TOPIC_NAV_STATE,
)
from carnav.models import Coordinate
from carnav.modules.navigation.nav import Navigation
from tests.fakes import fix_at, settle


async def _collect(events: EventBus, topic: str, count: int):
    received = []

    async def run():
        async for ev in events.subscribe(topic):
            received.append(ev)
            if len(received) >= count:
                return

    task = asyncio.create_task(run())
    await asyncio.sleep(0)
    return task, received


async def _wait_for_subscriber(events: EventBus, topic: str) -> None:
    for _ in range(100):
        if events.subscriber_count(topic):
            return
        await asyncio.sleep(0)
    raise AssertionError(f"nobody subscribed to {topic}")


@pytest.fixture
async def nav(session):
    events = EventBus()
    module = Navigation(events, session)
    yield module, events
    await module.stop()


async def test_denied_permission_is_published(nav, position_source):
    module, events = nav
    position_source.granted = False
    task, received = await _collect(events, TOPIC_NAV_ERROR, 1)
    module.start()
    await asyncio.wait_for(task, 1.0)
    assert received == [{"kind": "permission_denied", "message": "Location permission required"}]


async def test_fix_is_republished_as_state_and_camera(nav, position_source):
    module, events = nav
    state_task, states = await _collect(events, TOPIC_NAV_STATE, 2)
    camera_task, cameras = await _collect(events, TOPIC_NAV_CAMERA, 1)
    module.start()
    await _wait_for_subscriber(events, TOPIC_NAV_COMMAND)

    position_source.emit(fix_at(40.0, -73.0))
    await asyncio.wait_for(asyncio.gather(state_task, camera_task), 1.0)

    assert states[-1]["current_position"] == {"lat": 40.0, "lon": -73.0}
    assert states[-1]["loading"] is False
    assert cameras == [{"command": "recenter", "point": {"lat": 40.0, "lon": -73.0}, "zoom": None}]


async def test_commands_from_bus_drive_the_session(nav, session, geocoder, router):
    module, events = nav
    geocoder.results["Googleplex"] = [Coordinate(37.422, -122.0841)]
    module.start()
    await _wait_for_subscriber(events, TOPIC_NAV_COMMAND)
    await session.on_position_update(fix_at(40.0, -73.0))

    await events.publish(TOPIC_NAV_COMMAND, {"action": "submit_destination", "query": "Googleplex"})
    await settle()
    assert session.destination == Coordinate(37.422, -122.0841)
    assert session.route is not None

    await events.publish(TOPIC_NAV_COMMAND, {"action": "start"})
    await settle()
    assert session.started is True

    await events.publish(TOPIC_NAV_COMMAND, {"action": "toggle_tracking"})
    await settle()
    assert session.tracking is False

    await events.publish(TOPIC_NAV_COMMAND, {"action": "clear_destination"})
    await settle()
    assert session.destination is None
    assert session.started is False


async def test_handle_command_variants(nav, session, geocoder, router):
    module, _ = nav
    geocoder.results["X"] = [Coordinate(1.0, 1.0)]
    await session.on_position_update(fix_at(40.0, -73.0))
    await module.handle_command({"action": "submit_destination", "query": "X"})
    await settle()
    calls = len(router.calls)

    await module.handle_command({"action": "retry_route"})
    await settle()
    assert len(router.calls) == calls + 1

    await module.handle_command({"action": "bogus"})
    await module.handle_command({})
    assert session.destination == Coordinate(1.0, 1.0)


async def test_snapshot_is_json_ready(nav):
    module, _ = nav
    snap = module.snapshot()
    assert snap["mode"] == "idle"
    assert snap["loading"] is True


async def test_stop_closes_session(nav, session, position_source):
    module, events = nav
    module.start()
    await _wait_for_subscriber(events, TOPIC_NAV_COMMAND)
    await module.stop()
    assert session.closed is True
    assert position_source.subscriptions[0].cancelled is True
