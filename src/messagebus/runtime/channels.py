"""Bounded asyncio channels used between the transport and dispatch tasks."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from typing import Deque, Generic, TypeVar

from messagebus.contracts.envelope import MessageEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DELIVERY_CAPACITY = 100
DEFAULT_ERROR_CAPACITY = 10


class ChannelClosed(Exception):
    """Raised by a closed channel once it has nothing left to deliver."""


class DeliveryChannel:
    """Per-topic FIFO of envelopes with close semantics.

    Producers block while the channel is full. After ``close()`` producers are
    rejected, while consumers still drain whatever was buffered before seeing
    ``ChannelClosed``. Items only move after a waiter resumes, so cancelling a
    blocked ``get`` or ``put`` never loses or duplicates an envelope.
    """

    def __init__(self, topic: str, maxsize: int = DEFAULT_DELIVERY_CAPACITY) -> None:
        self.topic = topic
        self._maxsize = max(1, maxsize)
        self._items: Deque[MessageEnvelope] = deque()
        self._waiters: list[asyncio.Future[None]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def qsize(self) -> int:
        return len(self._items)

    def full(self) -> bool:
        return len(self._items) >= self._maxsize

    def close(self) -> None:
        self._closed = True
        self._wake()

    async def put(self, envelope: MessageEnvelope) -> None:
        while True:
            if self._closed:
                raise ChannelClosed(self.topic)
            if not self.full():
                self._items.append(envelope)
                self._wake()
                return
            await self._changed()

    def put_nowait(self, envelope: MessageEnvelope) -> None:
        """Raises ``asyncio.QueueFull`` when there is no room."""
        if self._closed:
            raise ChannelClosed(self.topic)
        if self.full():
            raise asyncio.QueueFull
        self._items.append(envelope)
        self._wake()

    async def get(self) -> MessageEnvelope:
        while True:
            if self._items:
                envelope = self._items.popleft()
                self._wake()
                return envelope
            if self._closed:
                raise ChannelClosed(self.topic)
            await self._changed()

    async def _changed(self) -> None:
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


class ErrorChannel(Generic[T]):
    """Shared fan-in sink for asynchronous errors.

    ``offer`` never blocks: when the buffer is full the error is dropped and
    logged, so producers can report from any context.
    """

    def __init__(self, maxsize: int = DEFAULT_ERROR_CAPACITY) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=max(1, maxsize))
        self.dropped = 0

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def offer(self, error: T) -> bool:
        try:
            self._queue.put_nowait(error)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Error channel full, dropping error: %s", error)
            return False
        return True

    async def get(self) -> T:
        return await self._queue.get()

    def get_nowait(self) -> T:
        """Raises ``asyncio.QueueEmpty`` when nothing is pending."""
        return self._queue.get_nowait()

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            yield await self._queue.get()


__all__ = [
    "ChannelClosed",
    "DEFAULT_DELIVERY_CAPACITY",
    "DEFAULT_ERROR_CAPACITY",
    "DeliveryChannel",
    "ErrorChannel",
]
