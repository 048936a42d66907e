"""Voice Activity Detection using WebRTC VAD with an energy gate.

The segmenter uses the per-frame decision to keep its silence timer honest:
a speaker who pauses mid-sentence keeps the segment open as long as voiced
frames keep arriving, even when the recognizer's partial text is unchanged.
"""

from dataclasses import dataclass

import numpy as np
import webrtcvad


@dataclass(frozen=True, slots=True)
class VadConfig:
    """Immutable VAD configuration."""

    frame_ms: int = 30
    mode: int = 2
    sample_rate: int = 16_000
    energy_threshold: float = 300.0

    def __post_init__(self) -> None:
        if self.frame_ms not in (10, 20, 30):
            raise ValueError("frame_ms must be one of: 10, 20, 30")
        if not (0 <= self.mode <= 3):
            raise ValueError("mode must be between 0 and 3")
        if self.sample_rate not in (8_000, 16_000, 32_000, 48_000):
            raise ValueError("sample_rate must be 8000, 16000, 32000 or 48000")


def rms(samples: np.ndarray) -> float:
    """Root-mean-square level of an int16 block."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))


class VoiceActivityDetector:
    """Per-frame speech/silence classifier."""

    __slots__ = ("_vad", "_config", "_frame_samples", "_residual", "_state")

    def __init__(self, config: VadConfig) -> None:
        self._config = config
        self._vad = webrtcvad.Vad(config.mode)
        self._frame_samples = int(config.sample_rate * config.frame_ms / 1000)
        self._residual = np.array([], dtype=np.int16)
        self._state = "silence"

    @property
    def state(self) -> str:
        """Current VAD state: 'speech' or 'silence'."""
        return self._state

    @property
    def frame_samples(self) -> int:
        """Number of samples per VAD frame."""
        return self._frame_samples

    def is_speech(self, samples: np.ndarray) -> bool:
        """Return True if any complete VAD frame in *samples* is voiced.

        Blocks quieter than the energy threshold are treated as silence
        without consulting WebRTC VAD, which is prone to firing on hum.
        Leftover samples are carried over to the next call.
        """
        if samples.size == 0:
            return False

        self._residual = (
            samples.copy()
            if self._residual.size == 0
            else np.concatenate([self._residual, samples])
        )

        voiced = False
        while self._residual.size >= self._frame_samples:
            chunk = self._residual[: self._frame_samples]
            self._residual = self._residual[self._frame_samples :]
            if rms(chunk) < self._config.energy_threshold:
                continue
            if self._vad.is_speech(chunk.tobytes(), self._config.sample_rate):
                voiced = True

        self._state = "speech" if voiced else "silence"
        return voiced

    def reset(self) -> None:
        """Clear carried-over samples."""
        self._residual = np.array([], dtype=np.int16)
        self._state = "silence"
