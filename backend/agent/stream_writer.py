"""Event multiplexing between the agent loop and the network transport.

The agent loop is the only writer. It pushes typed events into a
StreamWriter, which numbers them and frames them as SSE records onto a
bounded EventChannel. The HTTP response drains the channel; each record
it yields is sent and flushed on its own.
"""

import asyncio
import json
import logging

from .events import DoneEvent, ErrorEvent, StreamEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class EventChannel:
    """Bounded single-consumer channel with an explicit closed state."""

    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    async def send(self, record: dict) -> bool:
        if self._closed:
            return False
        # blocks while the consumer is behind
        await self._queue.put(record)
        return True

    async def close(self):
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class StreamWriter:
    """Assigns every record a strictly increasing index and guarantees a single trailing done record."""

    def __init__(self, channel: EventChannel):
        self._channel = channel
        self._next_index = 0
        self._finished = False
        self._transport_closed = False

    @property
    def emitted(self) -> int:
        return self._next_index

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def is_open(self) -> bool:
        return not (self._finished or self._transport_closed)

    def close_transport(self):
        """Mark the client as gone; later emits are silently dropped."""
        if not self._transport_closed:
            logger.debug(f"Transport closed after {self._next_index} records")
        self._transport_closed = True

    def _frame(self, event: StreamEvent, index: int) -> dict:
        data = {**event.payload(), "index": index}
        return {"event": event.label, "id": str(index), "data": json.dumps(data, default=str)}

    async def _send(self, event: StreamEvent) -> bool:
        index = self._next_index
        self._next_index += 1
        try:
            return await self._channel.send(self._frame(event, index))
        except asyncio.CancelledError:
            # the record never reached the queue, so its index is reused
            self._next_index = index
            raise

    async def emit(self, event: StreamEvent) -> bool:
        """Write one record. Returns False when the stream can no longer be written to."""
        if isinstance(event, DoneEvent):
            return await self.finish()
        if not self.is_open:
            return False
        return await self._send(event)

    async def finish(self) -> bool:
        """Write the terminal done record (at most once) and close the channel."""
        if self._finished:
            return False
        self._finished = True
        if self._transport_closed:
            return False
        await self._send(DoneEvent())
        await self._channel.close()
        return True

    async def fail(self, message: str) -> bool:
        """Write an error record followed by the done record."""
        await self.emit(ErrorEvent(message))
        return await self.finish()
