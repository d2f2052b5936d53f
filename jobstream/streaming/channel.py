"""EventChannel -- bounded per-job event buffer with independent readers."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Optional

from jobstream.errors import ChannelClosed
from jobstream.models.job import ProgressEvent

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 64


class ReaderHandle:
    """A cursor into an EventChannel.

    Iterate it (or await ``next()``) to receive events in sequence order;
    iteration stops once the channel is closed and fully drained. Call
    ``release()`` (or leave the ``async with`` block) as soon as the reader
    goes away so it stops counting against the publisher's capacity.
    """

    def __init__(self, channel: EventChannel, cursor: int) -> None:
        self._channel = channel
        self.cursor = cursor
        self.released = False

    async def next(self) -> Optional[ProgressEvent]:
        """Return the next event, or None at end-of-stream."""
        return await self._channel._read(self)

    def release(self) -> None:
        self._channel._release(self)

    def __aiter__(self) -> ReaderHandle:
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self.next()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> ReaderHandle:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()


class EventChannel:
    """Bounded, ordered queue of ProgressEvents for exactly one job.

    One writer, many readers. Every event stays buffered until each
    registered reader has consumed it; while nobody is reading, events
    stay buffered for the next reader. ``publish`` suspends once
    ``capacity`` events are buffered, so events are never dropped.
    The slowest connected reader sets the pace: a reader that stays
    attached but stops reading holds the publisher back, and with it every
    other reader of the job, until it catches up or is released.

    All state is mutated on the event loop only; waiting is done on loop
    futures, which keeps ``close()`` and ``ReaderHandle.release()``
    synchronous.
    """

    def __init__(self, job_id: str, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.job_id = job_id
        self._capacity = capacity
        self._buffer: deque[ProgressEvent] = deque()
        self._head = 0  # absolute offset of _buffer[0]
        self._last_seq = -1
        self._readers: set[ReaderHandle] = set()
        self._waiters: list[asyncio.Future[None]] = []
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def reader_count(self) -> int:
        return len(self._readers)

    async def publish(self, event: ProgressEvent) -> None:
        """Append an event, waiting for room while the buffer is full.

        Raises ChannelClosed if the channel is closed before the event
        could be appended.
        """
        self._check_order(event)
        while not self._closed and len(self._buffer) >= self._capacity:
            logger.debug(f"Channel {self.job_id} full, publisher waiting")
            await self._wait()
        if self._closed:
            raise ChannelClosed(self.job_id)
        self._check_order(event)
        self._append(event)

    def close(self, final_event: Optional[ProgressEvent] = None) -> None:
        """Close the channel. Safe to call more than once.

        ``final_event`` is appended regardless of capacity, so a terminal
        record never blocks the caller.
        """
        if self._closed:
            return
        if final_event is not None:
            self._check_order(final_event)
            self._append(final_event)
        self._closed = True
        logger.debug(f"Channel {self.job_id} closed with {len(self._buffer)} buffered")
        self._wake()

    def subscribe(self) -> ReaderHandle:
        """Register a reader starting at the oldest event still buffered."""
        reader = ReaderHandle(self, self._head)
        self._readers.add(reader)
        return reader

    async def _read(self, reader: ReaderHandle) -> Optional[ProgressEvent]:
        while not reader.released:
            index = reader.cursor - self._head
            if index < len(self._buffer):
                event = self._buffer[index]
                reader.cursor += 1
                self._trim()
                return event
            if self._closed:
                return None
            await self._wait()
        return None

    def _release(self, reader: ReaderHandle) -> None:
        if reader.released:
            return
        reader.released = True
        self._readers.discard(reader)
        self._trim()
        self._wake()

    def _check_order(self, event: ProgressEvent) -> None:
        if event.seq <= self._last_seq:
            raise ValueError(
                f"Channel {self.job_id}: seq {event.seq} after {self._last_seq}"
            )

    def _append(self, event: ProgressEvent) -> None:
        self._buffer.append(event)
        self._last_seq = event.seq
        self._wake()

    def _trim(self) -> None:
        # Drop events every registered reader has already consumed.
        if not self._readers:
            return
        low = min(reader.cursor for reader in self._readers)
        trimmed = False
        while self._head < low and self._buffer:
            self._buffer.popleft()
            self._head += 1
            trimmed = True
        if trimmed:
            self._wake()

    async def _wait(self) -> None:
        waiter = asyncio.get_running_loop().create_future()
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
