from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from image_randomizer.broadcast import ChannelRegistry, ProgressChannel
from image_randomizer.models import EventKind, ProgressEvent


async def _drain(subscription) -> list:
    return [event async for event in subscription]


@pytest.mark.asyncio
async def test_subscribers_see_events_until_terminal() -> None:
    channel = ProgressChannel("job-1")
    first = channel.subscribe()
    second = channel.subscribe()

    channel.publish(ProgressEvent.update("job-1", 20, "Finding image folders..."))
    channel.publish(ProgressEvent.completed("job-1", Path("out.zip")))

    for subscription in (first, second):
        events = await asyncio.wait_for(_drain(subscription), timeout=1)
        assert [event.kind for event in events] == [EventKind.PROGRESS, EventKind.COMPLETE]
    assert channel.subscriber_count == 0


@pytest.mark.asyncio
async def test_late_subscriber_sees_no_replay() -> None:
    channel = ProgressChannel("job-1")
    channel.publish(ProgressEvent.update("job-1", 20, "early"))
    late = channel.subscribe()
    channel.publish(ProgressEvent.failure("job-1", "boom"))

    events = await asyncio.wait_for(_drain(late), timeout=1)

    assert [event.kind for event in events] == [EventKind.ERROR]


@pytest.mark.asyncio
async def test_subscribing_after_terminal_event_yields_empty_stream() -> None:
    channel = ProgressChannel("job-1")
    channel.publish(ProgressEvent.failure("job-1", "boom"))

    assert await asyncio.wait_for(_drain(channel.subscribe()), timeout=1) == []


def test_events_after_terminal_are_dropped() -> None:
    channel = ProgressChannel("job-1")
    channel.publish(ProgressEvent.completed("job-1", Path("out.zip")))

    channel.publish(ProgressEvent.failure("job-1", "late"))

    assert channel.closed


def test_progress_may_not_go_backwards() -> None:
    channel = ProgressChannel("job-1")
    channel.publish(ProgressEvent.update("job-1", 30, "a"))

    with pytest.raises(ValueError):
        channel.publish(ProgressEvent.update("job-1", 10, "b"))


@pytest.mark.asyncio
async def test_closing_a_subscription_ends_iteration() -> None:
    channel = ProgressChannel("job-1")
    subscription = channel.subscribe()

    subscription.close()

    assert await asyncio.wait_for(_drain(subscription), timeout=1) == []
    assert channel.subscriber_count == 0


@pytest.mark.asyncio
async def test_registry_retires_channel_after_delay() -> None:
    registry = ChannelRegistry(retire_delay=0.01)
    registry.open("job-1")

    registry.schedule_retirement("job-1")
    assert "job-1" in registry
    await asyncio.sleep(0.05)

    assert "job-1" not in registry
    assert registry.get("job-1") is None
