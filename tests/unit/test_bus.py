from __future__ import annotations

import asyncio

import pytest

from h2o2.components import Com, ComponentInfo, Version
from h2o2.errors import BusClosedError
from h2o2.install.bus import Failed, ReadinessBus, Ready


def test_publish_without_subscribers_is_dropped() -> None:
    bus = ReadinessBus()
    assert bus.publish(Ready(Com.NODEJS, ComponentInfo())) == 0
    assert bus.publish(Failed(Com.MINIO)) == 0


@pytest.mark.asyncio
async def test_every_subscriber_gets_every_signal() -> None:
    bus = ReadinessBus()
    first = bus.subscribe()
    second = bus.subscribe()
    info = ComponentInfo(Version.valid("14.16.1"), "/usr/bin/node")

    assert bus.publish(Ready(Com.NODEJS, info)) == 2
    assert bus.publish(Failed(Com.MINIO)) == 2

    for sub in (first, second):
        assert await sub.recv() == Ready(Com.NODEJS, info)
        assert await sub.recv() == Failed(Com.MINIO)


@pytest.mark.asyncio
async def test_late_subscriber_sees_no_history() -> None:
    bus = ReadinessBus()
    bus.publish(Ready(Com.NODEJS, ComponentInfo()))
    late = bus.subscribe()
    bus.publish(Failed(Com.MONGODB))
    assert await late.recv() == Failed(Com.MONGODB)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(late.recv(), timeout=0.05)


@pytest.mark.asyncio
async def test_close_drains_backlog_then_raises() -> None:
    bus = ReadinessBus()
    sub = bus.subscribe()
    bus.publish(Failed(Com.SANDBOX))
    bus.close()
    assert await sub.recv() == Failed(Com.SANDBOX)
    with pytest.raises(BusClosedError):
        await sub.recv()
    with pytest.raises(BusClosedError):
        await sub.recv()
    assert bus.publish(Failed(Com.SANDBOX)) == 0


@pytest.mark.asyncio
async def test_close_wakes_blocked_receiver() -> None:
    bus = ReadinessBus()
    sub = bus.subscribe()
    waiter = asyncio.create_task(sub.recv())
    await asyncio.sleep(0)
    bus.close()
    with pytest.raises(BusClosedError):
        await waiter


@pytest.mark.asyncio
async def test_subscribe_after_close_is_closed() -> None:
    bus = ReadinessBus()
    bus.close()
    with pytest.raises(BusClosedError):
        await bus.subscribe().recv()


def test_detached_subscription_stops_counting() -> None:
    bus = ReadinessBus()
    sub = bus.subscribe()
    assert bus.receiver_count == 1
    sub.close()
    assert bus.receiver_count == 0
    assert bus.publish(Failed(Com.PM2)) == 0


@pytest.mark.asyncio
async def test_closed_subscription_does_not_block() -> None:
    bus = ReadinessBus()
    sub = bus.subscribe()
    sub.close()
    with pytest.raises(BusClosedError):
        await sub.recv()


@pytest.mark.asyncio
async def test_foreign_item_is_rejected() -> None:
    bus = ReadinessBus()
    sub = bus.subscribe()
    sub._deliver("nodejs")
    with pytest.raises(TypeError):
        await sub.recv()
