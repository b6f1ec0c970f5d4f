"""Per-job fan-out of progress events.

A channel is fire-and-forget multicast: a subscriber only sees events
published while it is attached, and nothing is replayed to late subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, Optional, Set

from .models import ProgressEvent

logger = logging.getLogger(__name__)

DEFAULT_RETIRE_DELAY = 60.0


class Subscription:
    """Async iterator over the events of one channel, ending at the terminal event."""

    def __init__(self, channel: "ProgressChannel") -> None:
        self._channel = channel
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._done = False

    def _deliver(self, event: Optional[ProgressEvent]) -> None:
        self._queue.put_nowait(event)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._done:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            self._done = True
            raise StopAsyncIteration
        if event.is_terminal:
            self._done = True
            self._channel.unsubscribe(self)
        return event

    def close(self) -> None:
        if not self._done:
            self._channel.unsubscribe(self)
            self._deliver(None)


class ProgressChannel:
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._subscribers: Set[Subscription] = set()
        self._last_progress = 0
        self.closed = False

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        if self.closed:
            subscription._deliver(None)
        else:
            self._subscribers.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ProgressEvent) -> None:
        if self.closed:
            logger.warning("Dropping event for finished job %s: %s", self.job_id, event.kind.value)
            return
        if event.progress is not None:
            if event.progress < self._last_progress:
                raise ValueError(
                    f"Progress for job {self.job_id} went backwards "
                    f"({event.progress} < {self._last_progress})"
                )
            self._last_progress = event.progress
        if event.is_terminal:
            self.closed = True
        for subscriber in list(self._subscribers):
            subscriber._deliver(event)
        if self.closed:
            self._subscribers.clear()


class ChannelRegistry:
    """Holds one channel per job and retires channels after their terminal event."""

    def __init__(self, retire_delay: float = DEFAULT_RETIRE_DELAY) -> None:
        self.retire_delay = retire_delay
        self._channels: Dict[str, ProgressChannel] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def open(self, job_id: str) -> ProgressChannel:
        channel = self._channels.get(job_id)
        if channel is None:
            channel = ProgressChannel(job_id)
            self._channels[job_id] = channel
        return channel

    def get(self, job_id: str) -> Optional[ProgressChannel]:
        return self._channels.get(job_id)

    def schedule_retirement(self, job_id: str) -> None:
        loop = asyncio.get_running_loop()
        previous = self._timers.pop(job_id, None)
        if previous:
            previous.cancel()
        self._timers[job_id] = loop.call_later(self.retire_delay, self.retire, job_id)

    def retire(self, job_id: str) -> None:
        timer = self._timers.pop(job_id, None)
        if timer:
            timer.cancel()
        if self._channels.pop(job_id, None) is not None:
            logger.debug("Retired progress channel for job %s", job_id)

    def close(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._channels.clear()

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._channels
