"""Server-sent event transport that outlives the client connection."""

import asyncio
from collections.abc import AsyncIterator

from fastapi.responses import StreamingResponse

from chatbridge.models.events import StreamEvent
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

_CLOSED = object()

# Strong references to producer tasks so they are not garbage collected mid-run
_background_tasks: set[asyncio.Task] = set()


class EventChannel:
    """Queue between an event producer and an HTTP response body.

    Once the consumer detaches, sends are dropped and report False; the
    producer keeps running.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._detached = False
        self._closed = False

    @property
    def detached(self) -> bool:
        return self._detached

    def send(self, frame: str) -> bool:
        """Queue a frame for the consumer. Returns False if it was dropped."""
        if self._detached or self._closed:
            return False
        self._queue.put_nowait(frame)
        return True

    def close(self) -> None:
        """Signal the end of the stream."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def detach(self) -> None:
        """The consumer went away; stop buffering frames."""
        if not self._detached:
            logger.info("Stream consumer disconnected; continuing in background")
        self._detached = True

    async def frames(self) -> AsyncIterator[str]:
        """Yield frames until the producer closes the channel."""
        try:
            while True:
                frame = await self._queue.get()
                if frame is _CLOSED:
                    return
                yield frame
        finally:
            if not self._closed:
                self.detach()


async def pump_events(events: AsyncIterator[StreamEvent], channel: EventChannel) -> None:
    """Write every event from `events` to `channel`, then close it."""
    try:
        async for event in events:
            channel.send(event.to_sse())
    except Exception as e:
        logger.error(f"Event producer failed: {e}", exc_info=True)
    finally:
        channel.close()


def start_event_stream(events: AsyncIterator[StreamEvent]) -> EventChannel:
    """Run `events` in a background task feeding a new channel."""
    channel = EventChannel()
    task = asyncio.create_task(pump_events(events, channel))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return channel


def stream_events(events: AsyncIterator[StreamEvent]) -> StreamingResponse:
    """Build an SSE response whose producer survives client disconnects."""
    channel = start_event_stream(events)
    return StreamingResponse(channel.frames(), media_type="text/event-stream", headers=SSE_HEADERS)
