"""Audio output: the held playback stream and the speaking-state monitor.

PlaybackMonitor is the feedback edge from the synthesizer to the segmenter.
It records when the assistant started and stopped talking so that frames
captured in that window (plus a short echo tail) are never transcribed into
a new utterance.
"""

import threading
import time
from collections import deque
from enum import Enum
from typing import Any

import numpy as np

from hark.errors import FatalStartupFailure


class PlaybackState(Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


class PlaybackMonitor:
    """Thread-safe record of the synthesizer's recent speaking windows.

    Finished windows are kept so that frames still queued from an earlier
    reply are recognized as our own voice after the next reply has started.
    """

    __slots__ = ("_lock", "_speaking", "_started", "_windows", "_echo_tail")

    def __init__(self, echo_tail: float = 0.0, history: int = 8) -> None:
        self._lock = threading.Lock()
        self._speaking = False
        self._started: float | None = None
        self._windows: deque[tuple[float, float]] = deque(maxlen=history)
        self._echo_tail = echo_tail

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            return (
                PlaybackState.SPEAKING if self._speaking else PlaybackState.IDLE
            )

    @property
    def speaking(self) -> bool:
        with self._lock:
            return self._speaking

    def mark_started(self, now: float | None = None) -> None:
        with self._lock:
            self._speaking = True
            self._started = time.monotonic() if now is None else now

    def mark_stopped(self, now: float | None = None) -> None:
        with self._lock:
            if not self._speaking:
                return
            self._speaking = False
            ended = time.monotonic() if now is None else now
            self._windows.append((self._started, ended))

    def covers(self, timestamp: float) -> bool:
        """Whether audio captured at *timestamp* may contain our own voice."""
        with self._lock:
            if self._speaking and timestamp >= self._started:
                return True
            return any(
                start <= timestamp <= end + self._echo_tail
                for start, end in self._windows
            )

    def ended_before(self, timestamp: float) -> bool:
        """Whether playback, echo tail included, was over by *timestamp*."""
        with self._lock:
            if self._speaking or not self._windows:
                return False
            return timestamp > self._windows[-1][1] + self._echo_tail


class AudioSink:
    """Owns the output stream for the lifetime of the process.

    ``write`` blocks until the block has been queued to the device, which
    paces playback at one block per buffer period. ``abort`` drops whatever
    is still queued and restarts the stream so the next phrase starts clean.
    """

    def __init__(
        self,
        sample_rate: int,
        blocksize: int,
        device: int | str | None = None,
    ) -> None:
        self._sample_rate = sample_rate
        self._blocksize = blocksize
        self._device = device
        self._stream: Any = None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def blocksize(self) -> int:
        return self._blocksize

    def open(self) -> None:
        """Open and start the output stream; failure is fatal."""
        try:
            import sounddevice as sd
        except OSError as exc:
            raise FatalStartupFailure(f"PortAudio unavailable: {exc}") from exc

        stream_kwargs: dict[str, Any] = {}
        if self._device is not None:
            stream_kwargs["device"] = self._device
        try:
            self._stream = sd.OutputStream(
                samplerate=self._sample_rate,
                blocksize=self._blocksize,
                channels=1,
                dtype="int16",
                **stream_kwargs,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            raise FatalStartupFailure(
                f"cannot open audio output device: {exc}"
            ) from exc

    def write(self, block: np.ndarray) -> None:
        self._stream.write(block.reshape(-1, 1))

    def abort(self) -> None:
        """Discard queued audio immediately and get ready for the next phrase."""
        if self._stream is None:
            return
        self._stream.abort()
        self._stream.start()

    def close(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
        finally:
            self._stream.close()
            self._stream = None
