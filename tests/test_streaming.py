"""Tests for the SSE transport."""

import asyncio

import pytest

from chatbridge.models.events import DoneEvent, TextEvent
from chatbridge.services.streaming import EventChannel, pump_events, start_event_stream


async def slow_events(record: list):
    for text in ["a", "b", "c"]:
        await asyncio.sleep(0.01)
        record.append(text)
        yield TextEvent(text)
    record.append("done")
    yield DoneEvent()


class TestEventChannel:
    """Tests for the producer/consumer channel."""

    @pytest.mark.asyncio
    async def test_frames_in_order_then_close(self):
        channel = EventChannel()
        channel.send("one")
        channel.send("two")
        channel.close()

        assert [frame async for frame in channel.frames()] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_send_after_detach_is_noop(self):
        channel = EventChannel()
        channel.detach()

        assert channel.send("dropped") is False
        assert channel.detached

    @pytest.mark.asyncio
    async def test_send_after_close_is_noop(self):
        channel = EventChannel()
        channel.close()
        channel.close()

        assert channel.send("late") is False


class TestPumpEvents:
    """Tests for running the producer in the background."""

    @pytest.mark.asyncio
    async def test_pump_renders_frames(self):
        channel = EventChannel()
        await pump_events(slow_events([]), channel)

        frames = [frame async for frame in channel.frames()]
        assert frames == [
            'data: {"text":"a"}\n\n',
            'data: {"text":"b"}\n\n',
            'data: {"text":"c"}\n\n',
            "data: [DONE]\n\n",
        ]

    @pytest.mark.asyncio
    async def test_producer_survives_consumer_disconnect(self):
        record: list = []
        channel = start_event_stream(slow_events(record))

        frames = channel.frames()
        first = await frames.__anext__()
        await frames.aclose()

        assert first == 'data: {"text":"a"}\n\n'
        assert channel.detached

        for _ in range(50):
            if "done" in record:
                break
            await asyncio.sleep(0.01)
        assert record == ["a", "b", "c", "done"]

    @pytest.mark.asyncio
    async def test_producer_failure_still_closes_channel(self):
        async def broken():
            yield TextEvent("partial")
            raise RuntimeError("boom")

        channel = EventChannel()
        await pump_events(broken(), channel)

        assert [frame async for frame in channel.frames()] == ['data: {"text":"partial"}\n\n']
