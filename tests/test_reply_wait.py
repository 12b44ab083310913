"""Tests for the reply polling primitives."""

import time

import pytest

from chatbridge.services.reply_wait import is_finalize_signal, poll, wait_for_replies


class SlotStub:
    """A single reply slot; replies become visible on the given check number."""

    def __init__(self, schedule: dict[int, str]):
        self.schedule = dict(schedule)
        self.current: str | None = None
        self.checks = 0
        self.clears = 0

    async def check(self) -> str | None:
        self.checks += 1
        if self.checks in self.schedule:
            self.current = self.schedule[self.checks]
        return self.current

    async def clear(self) -> None:
        self.clears += 1
        self.current = None


class TestPoll:
    """Tests for the single-value poll."""

    @pytest.mark.asyncio
    async def test_returns_first_value(self):
        slot = SlotStub({3: "hello"})
        assert await poll(slot.check, interval=0.01, timeout=1.0) == "hello"
        assert slot.checks == 3

    @pytest.mark.asyncio
    async def test_returns_none_after_timeout(self):
        slot = SlotStub({})
        started = time.monotonic()

        assert await poll(slot.check, interval=0.02, timeout=0.1) is None
        assert time.monotonic() - started >= 0.09
        # Sleeps between checks rather than spinning
        assert slot.checks <= 8

    @pytest.mark.asyncio
    async def test_empty_string_is_a_value(self):
        slot = SlotStub({1: ""})

        assert await poll(slot.check, interval=0.01, timeout=1.0) == ""
        assert slot.checks == 1


class TestFinalizeSignal:
    """Tests for sentinel matching."""

    @pytest.mark.parametrize("reply", ["SEND", "send", "  Send \n"])
    def test_matches_case_insensitively(self, reply):
        assert is_finalize_signal(reply, "SEND")

    @pytest.mark.parametrize("reply", ["SEND it", "sent", "please send"])
    def test_requires_exact_match(self, reply):
        assert not is_finalize_signal(reply, "SEND")


class TestWaitForReplies:
    """Tests for the accumulating reply wait."""

    @pytest.mark.asyncio
    async def test_accumulates_until_finalize(self):
        slot = SlotStub({1: "Quote $500", 3: "Mention free shipping", 5: "SEND"})

        result = await wait_for_replies(slot.check, interval=0.01, timeout=1.0, clear=slot.clear)

        assert result.instructions == ["Quote $500", "Mention free shipping"]
        assert result.finalized is True
        assert result.timed_out is False
        assert slot.clears == 2

    @pytest.mark.asyncio
    async def test_timeout_keeps_collected_replies(self):
        slot = SlotStub({2: "Call them tomorrow"})

        result = await wait_for_replies(slot.check, interval=0.01, timeout=0.1, clear=slot.clear)

        assert result.instructions == ["Call them tomorrow"]
        assert result.finalized is False
        assert result.timed_out is True
        assert result.received is True

    @pytest.mark.asyncio
    async def test_timeout_without_replies(self):
        slot = SlotStub({})

        result = await wait_for_replies(slot.check, interval=0.01, timeout=0.05, clear=slot.clear)

        assert result.received is False
        assert result.timed_out is True

    @pytest.mark.asyncio
    async def test_finalize_without_instructions(self):
        slot = SlotStub({1: "send"})

        result = await wait_for_replies(slot.check, interval=0.01, timeout=1.0, clear=slot.clear)

        assert result.finalized is True
        assert result.received is False
        assert slot.clears == 0

    @pytest.mark.asyncio
    async def test_custom_finalize_keyword(self):
        slot = SlotStub({1: "go ahead", 2: "DONE"})

        result = await wait_for_replies(
            slot.check, interval=0.01, timeout=1.0, clear=slot.clear, finalize_keyword="done"
        )

        assert result.instructions == ["go ahead"]
        assert result.finalized is True

    @pytest.mark.asyncio
    async def test_single_mode_ends_on_first_reply(self):
        slot = SlotStub({2: "Yes", 3: "SEND"})

        result = await wait_for_replies(slot.check, interval=0.01, timeout=1.0, clear=slot.clear, mode="single")

        assert result.instructions == ["Yes"]
        assert slot.checks == 2
        assert slot.clears == 0

    @pytest.mark.asyncio
    async def test_without_clear_callback_returns_first_reply_once(self):
        slot = SlotStub({1: "Only once"})
        started = time.monotonic()

        result = await wait_for_replies(slot.check, interval=0.01, timeout=1.0)

        assert result.instructions == ["Only once"]
        assert result.timed_out is False
        assert slot.checks == 1
        assert time.monotonic() - started < 0.5

    @pytest.mark.asyncio
    async def test_blank_replies_are_skipped(self):
        slot = SlotStub({1: "", 2: "Real answer", 3: "SEND"})

        result = await wait_for_replies(slot.check, interval=0.01, timeout=1.0, clear=slot.clear)

        assert result.instructions == ["Real answer"]
        assert result.finalized is True
