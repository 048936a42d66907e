"""Microphone capture: a thin adapter over a sounddevice input stream.

The PortAudio callback runs on its own thread and must return quickly, so it
only copies the block into an AudioFrame and defers the enqueue to the event
loop. Status flags from PortAudio (overflows, glitches) are recoverable
faults: they are counted and logged, and capture carries on.
"""

import asyncio
import time
from typing import Any

import numpy as np

from hark.audio.channel import FrameChannel
from hark.env import LOGGER
from hark.errors import FatalStartupFailure, RecoverableAudioFault
from hark.types import AudioFrame


class AudioSource:
    """Owns the input stream for the lifetime of the process."""

    def __init__(
        self,
        channel: FrameChannel,
        sample_rate: int,
        frame_samples: int,
        device: int | str | None = None,
    ) -> None:
        self._channel = channel
        self._sample_rate = sample_rate
        self._frame_samples = frame_samples
        self._device = device
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream: Any = None
        self._faults = 0

    @property
    def faults(self) -> int:
        """Number of callbacks that reported a PortAudio status flag."""
        return self._faults

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    def _callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: Any,
        status: Any,
    ) -> None:
        """Keep callback lightweight by deferring work to the async loop."""
        if status:
            self._faults += 1
            LOGGER.debug("%s", RecoverableAudioFault(str(status)))
        frame = AudioFrame(
            samples=indata.reshape(-1).copy(),
            timestamp=time.monotonic(),
            sample_rate=self._sample_rate,
        )
        self._loop.call_soon_threadsafe(self._channel.put, frame)

    def open(self, loop: asyncio.AbstractEventLoop) -> None:
        """Open and start the input stream; failure is fatal."""
        try:
            import sounddevice as sd
        except OSError as exc:
            raise FatalStartupFailure(f"PortAudio unavailable: {exc}") from exc

        self._loop = loop
        stream_kwargs: dict[str, Any] = {}
        if self._device is not None:
            stream_kwargs["device"] = self._device
        try:
            self._stream = sd.InputStream(
                samplerate=self._sample_rate,
                blocksize=self._frame_samples,
                channels=1,
                dtype="int16",
                callback=self._callback,
                **stream_kwargs,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            raise FatalStartupFailure(
                f"cannot open audio input device: {exc}"
            ) from exc

    def close(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
        finally:
            self._stream.close()
            self._stream = None
