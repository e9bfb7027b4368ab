"""Broadcast channel for component readiness signals."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from h2o2.components import Com, ComponentInfo
from h2o2.errors import BusClosedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Ready:
    com: Com
    info: ComponentInfo


@dataclass(frozen=True, slots=True)
class Failed:
    com: Com


Signal = Ready | Failed

_CLOSED = object()


class Subscription:
    """Receive handle for signals published after it was created."""

    def __init__(self, bus: ReadinessBus) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[Signal | object] = asyncio.Queue()
        self._closed = False

    def _deliver(self, item: Signal | object) -> None:
        self._queue.put_nowait(item)

    async def recv(self) -> Signal:
        if self._closed and self._queue.empty():
            raise BusClosedError("readiness bus closed")
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            raise BusClosedError("readiness bus closed")
        if not isinstance(item, Ready | Failed):
            raise TypeError(f"unexpected item on readiness bus: {item!r}")
        return item

    def close(self) -> None:
        self._closed = True
        self._bus._detach(self)


class ReadinessBus:
    """Fire-and-forget broadcast without history.

    A subscriber sees every signal published after ``subscribe()`` returned
    and nothing published before.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self._closed = False

    @property
    def receiver_count(self) -> int:
        return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        if self._closed:
            sub._deliver(_CLOSED)
        else:
            self._subscribers.append(sub)
        return sub

    def publish(self, signal: Signal) -> int:
        """Deliver ``signal`` to every live subscriber; return how many got it."""
        if self._closed:
            logger.debug("Dropping %s published after close", signal)
            return 0
        for sub in self._subscribers:
            sub._deliver(signal)
        if not self._subscribers:
            logger.debug("No subscriber for %s", signal)
        return len(self._subscribers)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for sub in subscribers:
            sub._deliver(_CLOSED)

    def _detach(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)
