"""Tests for hark.audio.channel: bounded drop-oldest frame queue."""

from __future__ import annotations

import asyncio

import pytest
from conftest import make_frame

from hark.audio.channel import FrameChannel


class TestFrameChannel:
    def test_fifo_order(self) -> None:
        channel = FrameChannel(4)
        for ts in (1.0, 2.0, 3.0):
            channel.put(make_frame(ts))
        assert [channel.get_nowait().timestamp for _ in range(3)] == [1.0, 2.0, 3.0]
        assert channel.get_nowait() is None

    def test_drops_oldest_when_full(self) -> None:
        channel = FrameChannel(2)
        for ts in (1.0, 2.0, 3.0, 4.0):
            channel.put(make_frame(ts))
        assert channel.dropped == 2
        assert channel.qsize() == 2
        assert channel.get_nowait().timestamp == 3.0

    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            FrameChannel(0)

    def test_get_waits_for_put(self) -> None:
        async def scenario() -> float:
            channel = FrameChannel(2)
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, channel.put, make_frame(7.0))
            frame = await asyncio.wait_for(channel.get(), timeout=1.0)
            return frame.timestamp

        assert asyncio.run(scenario()) == 7.0

    def test_clear(self) -> None:
        channel = FrameChannel(3)
        channel.put(make_frame(1.0))
        channel.clear()
        assert channel.qsize() == 0
