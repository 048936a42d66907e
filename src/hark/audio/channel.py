"""Bounded frame channel with drop-oldest backpressure.

The capture callback must never block, so instead of waiting for space the
channel discards the oldest queued frame. Bounded latency is preferred over
unbounded memory growth: a dropped frame degrades recognition for an instant
rather than stalling capture.

Not thread-safe: producers on other threads must go through
``loop.call_soon_threadsafe(channel.put, frame)``.
"""

import asyncio
from collections import deque

from hark.types import AudioFrame


class FrameChannel:
    """Single-consumer asyncio queue that overwrites its oldest entry."""

    __slots__ = ("_frames", "_ready", "_dropped", "_maxsize")

    def __init__(self, maxsize: int) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._maxsize = maxsize
        self._frames: deque[AudioFrame] = deque(maxlen=maxsize)
        self._ready = asyncio.Event()
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Frames discarded because the consumer fell behind."""
        return self._dropped

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def qsize(self) -> int:
        return len(self._frames)

    def put(self, frame: AudioFrame) -> None:
        """Enqueue *frame*, evicting the oldest frame when full."""
        if len(self._frames) == self._maxsize:
            self._dropped += 1
        self._frames.append(frame)
        self._ready.set()

    def get_nowait(self) -> AudioFrame | None:
        if not self._frames:
            return None
        return self._frames.popleft()

    async def get(self) -> AudioFrame:
        """Wait for and return the oldest queued frame."""
        while not self._frames:
            self._ready.clear()
            await self._ready.wait()
        return self._frames.popleft()

    def clear(self) -> None:
        self._frames.clear()
