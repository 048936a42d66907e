"""Text-to-speech and playback as one scoped, cancellable operation.

``speak`` synthesizes a phrase and writes it to the held output stream one
playback block at a time. The cancel event is checked between blocks, so a
cancelled phrase stops within one buffer period; queued audio is then
aborted on the device. The playback monitor is flipped back to IDLE in a
``finally`` block, whatever happened.
"""

import io
import subprocess
import threading
import wave
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import numpy as np

from hark.audio.playback import PlaybackMonitor, PlaybackState
from hark.env import LOGGER, suppress_output
from hark.errors import FatalStartupFailure
from hark.protocols import AudioSinkLike, SynthesisEngine
from hark.types import ResponsePhrase


def resample(audio: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampling of int16 mono audio."""
    if source_rate == target_rate or audio.size == 0:
        return audio.astype(np.int16, copy=False)
    duration = len(audio) / source_rate
    n_target = int(duration * target_rate)
    x_old = np.linspace(0, duration, len(audio), endpoint=False)
    x_new = np.linspace(0, duration, n_target, endpoint=False)
    return np.interp(x_new, x_old, audio.astype(np.float32)).astype(np.int16)


class PiperEngine:
    """Local neural TTS with a Piper ``.onnx`` voice."""

    def __init__(self, voice: Any) -> None:
        self._voice = voice

    @classmethod
    def load(cls, model_path: str | Path) -> "PiperEngine":
        path = Path(model_path).expanduser()
        if not path.is_file():
            raise FatalStartupFailure(f"voice model not found: {path}")

        from piper import PiperVoice

        try:
            with suppress_output():
                voice = PiperVoice.load(str(path))
        except Exception as exc:
            raise FatalStartupFailure(
                f"failed to load voice model {path}: {exc}"
            ) from exc
        return cls(voice)

    def synthesize(self, text: str) -> Iterator[tuple[np.ndarray, int]]:
        for chunk in self._voice.synthesize(text):
            samples = np.frombuffer(chunk.audio_int16_bytes, dtype=np.int16)
            yield samples, chunk.sample_rate


class EspeakEngine:
    """Formant TTS through the ``espeak-ng`` command line tool."""

    def __init__(
        self,
        voice: str = "en-us",
        words_per_minute: int = 160,
        executable: str = "espeak-ng",
        timeout: float = 10.0,
    ) -> None:
        self._voice = voice
        self._wpm = words_per_minute
        self._executable = executable
        self._timeout = timeout

    def synthesize(self, text: str) -> Iterator[tuple[np.ndarray, int]]:
        proc = subprocess.run(
            [
                self._executable,
                "--stdout",
                "-v",
                self._voice,
                "-s",
                str(self._wpm),
                text,
            ],
            capture_output=True,
            timeout=self._timeout,
            check=True,
        )
        with wave.open(io.BytesIO(proc.stdout), "rb") as wf:
            rate = wf.getframerate()
            raw = wf.readframes(wf.getnframes())
        yield np.frombuffer(raw, dtype=np.int16), rate


class SpeechSynthesizer:
    """Speaks phrases through the sink and reports speaking state."""

    def __init__(
        self,
        engine: SynthesisEngine,
        sink: AudioSinkLike,
        monitor: PlaybackMonitor,
    ) -> None:
        self._engine = engine
        self._sink = sink
        self._monitor = monitor
        self._lock = threading.Lock()
        self._cache: dict[str, np.ndarray] = {}

    @property
    def state(self) -> PlaybackState:
        return self._monitor.state

    @property
    def monitor(self) -> PlaybackMonitor:
        return self._monitor

    def _render(self, text: str) -> Iterator[np.ndarray]:
        cached = self._cache.get(text)
        if cached is not None:
            yield cached
            return
        for samples, rate in self._engine.synthesize(text):
            yield resample(samples, rate, self._sink.sample_rate)

    def warm(self, phrases: Iterable[str]) -> None:
        """Pre-render phrases that must play without synthesis delay."""
        for phrase in phrases:
            if phrase and phrase not in self._cache:
                chunks = list(self._render(phrase))
                self._cache[phrase] = (
                    np.concatenate(chunks) if chunks else np.array([], np.int16)
                )
        LOGGER.debug("Cached %d phrases", len(self._cache))

    def _play(self, audio: np.ndarray, cancel: threading.Event) -> bool:
        block = self._sink.blocksize
        for start in range(0, audio.size, block):
            if cancel.is_set():
                return False
            self._sink.write(audio[start : start + block])
        return not cancel.is_set()

    def speak(
        self,
        phrase: ResponsePhrase | str,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Synthesize and play *phrase*.

        Returns True if playback ran to completion, False if cancelled.
        Blocks the calling thread; run it with ``asyncio.to_thread``.
        """
        text = phrase.text if isinstance(phrase, ResponsePhrase) else phrase
        if not text.strip():
            return True
        cancel = cancel or threading.Event()

        with self._lock:
            self._monitor.mark_started()
            completed = False
            try:
                for audio in self._render(text):
                    if not self._play(audio, cancel):
                        break
                else:
                    completed = True
            finally:
                try:
                    if not completed:
                        self._sink.abort()
                finally:
                    self._monitor.mark_stopped()
        return completed
