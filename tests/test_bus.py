from __future__ import annotations

import asyncio
import dataclasses

import pytest

from stratus.bus import EventBus
from stratus.events import Event, EventType
from stratus.types import InstanceConfig, InstanceInfo

pytestmark = [pytest.mark.unit]


def web(i: int) -> InstanceInfo:
    return InstanceInfo(
        id=str(i), name=f"web-{i}", public_ip=f"192.0.2.{i + 1}", provider="digitalocean"
    )


@pytest.mark.asyncio
async def test_handler_receives_published_event():
    received: list[Event] = []

    async with EventBus() as bus:

        @bus.on(EventType.CREATED)
        async def handler(event: Event) -> None:
            received.append(event)

        await bus.publish(Event.created("job-1", [web(0)], job_name="demo", owner_id=7))

    assert len(received) == 1
    assert received[0].job_id == "job-1"
    assert received[0].owner_id == 7
    assert received[0].inventory == {"web-0": "192.0.2.1"}


@pytest.mark.asyncio
async def test_handlers_only_receive_subscribed_types():
    created: list[str] = []
    deleted: list[str] = []

    async with EventBus() as bus:
        bus.subscribe(EventType.CREATED, lambda e: _append(created, e.job_id))
        bus.subscribe(EventType.DELETED, lambda e: _append(deleted, e.job_id))
        await bus.publish(Event.created("a", [web(0)]))
        await bus.publish(Event.deleted("b"))

    assert created == ["a"]
    assert deleted == ["b"]


async def _append(target: list[str], value: str) -> None:
    target.append(value)


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others_or_publisher():
    ran: list[str] = []

    async with EventBus() as bus:

        @bus.on(EventType.CREATED)
        async def broken(event: Event) -> None:
            raise RuntimeError("provisioning exploded")

        @bus.on(EventType.CREATED)
        async def healthy(event: Event) -> None:
            ran.append(event.job_id)

        await bus.publish(Event.created("job-1", [web(0)]))
        await bus.publish(Event.created("job-2", [web(1)]))

    assert sorted(ran) == ["job-1", "job-2"]


@pytest.mark.asyncio
async def test_same_type_events_dispatched_in_publish_order():
    order: list[str] = []

    async with EventBus(max_concurrent_handlers=1) as bus:

        @bus.on(EventType.CREATED)
        async def handler(event: Event) -> None:
            order.append(event.job_id)

        for i in range(10):
            await bus.publish(Event.created(f"job-{i}", [web(i)]))

    assert order == [f"job-{i}" for i in range(10)]


@pytest.mark.asyncio
async def test_fan_out_is_bounded():
    running = 0
    peak = 0

    async with EventBus(max_concurrent_handlers=2) as bus:

        @bus.on(EventType.CREATED)
        async def slow(event: Event) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        for i in range(6):
            await bus.publish(Event.created(f"job-{i}", [web(i)]))

    assert peak == 2


@pytest.mark.asyncio
async def test_handler_timeout_cancels_slow_handler():
    finished: list[str] = []

    async with EventBus(handler_timeout=0.01) as bus:

        @bus.on(EventType.CREATED)
        async def stuck(event: Event) -> None:
            await asyncio.sleep(10)
            finished.append("stuck")

        @bus.on(EventType.CREATED)
        async def quick(event: Event) -> None:
            finished.append("quick")

        await bus.publish(Event.created("job-1", [web(0)]))

    assert finished == ["quick"]


@pytest.mark.asyncio
async def test_publish_nowait_raises_when_saturated():
    bus = EventBus(queue_size=1)
    bus.publish_nowait(Event.deleted("a"))
    with pytest.raises(asyncio.QueueFull):
        bus.publish_nowait(Event.deleted("b"))
    await bus.stop()


@pytest.mark.asyncio
async def test_publish_starts_the_dispatcher():
    received: list[str] = []
    bus = EventBus(queue_size=1)
    bus.subscribe(EventType.DELETED, lambda e: _append(received, e.job_id))

    # more events than the queue holds, without an explicit start
    for job in ("a", "b", "c"):
        await bus.publish(Event.deleted(job))
    await asyncio.wait_for(bus.join(), timeout=1)

    assert received == ["a", "b", "c"]
    assert bus.running
    await bus.stop()


@pytest.mark.asyncio
async def test_stop_cancels_running_handlers():
    started = asyncio.Event()
    cancelled = asyncio.Event()
    bus = EventBus()

    async def forever(event: Event) -> None:
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    bus.subscribe(EventType.CREATED, forever)
    bus.start()
    await bus.publish(Event.created("job-1", [web(0)]))
    await started.wait()
    await bus.stop()

    assert cancelled.is_set()
    assert not bus.running


def test_events_are_immutable():
    event = Event.created("job-1", [web(0)], [InstanceConfig(region="nyc1")])
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.job_id = "other"  # type: ignore[misc]
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.instances[0].public_ip = "10.0.0.1"  # type: ignore[misc]
    assert isinstance(event.instances, tuple)
    assert isinstance(event.requests, tuple)


def test_needs_provisioning():
    assert Event.created("j", [], [InstanceConfig(provision=True)]).needs_provisioning
    assert not Event.created("j", [], [InstanceConfig(provision=False)]).needs_provisioning
    assert not Event.created("j", []).needs_provisioning


def test_event_type_wire_names():
    assert EventType.CREATED == "instances_created"
    assert EventType.DELETED == "instances_deleted"
    assert Event.inventory_requested("j").type is EventType.INVENTORY_REQUESTED
