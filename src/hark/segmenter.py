"""Utterance segmentation: recognizer output in, discrete utterances out.

State machine::

    SILENT --(meaningful partial above the confidence floor)--> SPEECH_DETECTED
    SPEECH_DETECTED --(final result | silence timeout | length cap)--> FINALIZING
    FINALIZING --(emit Utterance or discard as noise)--> SILENT

FINALIZING is transient: it is entered and left within a single
``process`` call, so observers only ever see SILENT or SPEECH_DETECTED.

All timing comes from frame timestamps, never from the wall clock, which
keeps segmentation deterministic and lets tests drive it with synthetic
frames.
"""

from dataclasses import dataclass, replace
from enum import Enum

from hark.audio.playback import PlaybackMonitor
from hark.constants import (
    DEFAULT_CONFIDENCE_FLOOR,
    DEFAULT_MAX_SILENCE_S,
    DEFAULT_MAX_UTTERANCE_S,
    DEFAULT_MIN_DURATION_S,
    DEFAULT_WAKE_WINDOW_S,
)
from hark.text import is_meaningful
from hark.types import AudioFrame, PartialTranscript, Utterance
from hark.wake import PhraseWakeDetector


class SegmenterState(Enum):
    SILENT = "silent"
    SPEECH_DETECTED = "speech_detected"
    FINALIZING = "finalizing"


class SuppressionPolicy(Enum):
    """What to do with recognizer output captured while we are speaking."""

    STRICT = "strict"
    INTERRUPT_ON_WAKE = "interrupt_on_wake"


@dataclass(frozen=True, slots=True)
class SegmenterConfig:
    """Immutable segmentation thresholds."""

    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    max_silence_s: float = DEFAULT_MAX_SILENCE_S
    min_duration_s: float = DEFAULT_MIN_DURATION_S
    max_utterance_s: float = DEFAULT_MAX_UTTERANCE_S
    policy: SuppressionPolicy = SuppressionPolicy.INTERRUPT_ON_WAKE
    require_wake: bool = False
    wake_window_s: float = DEFAULT_WAKE_WINDOW_S

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence_floor <= 1.0):
            raise ValueError("confidence_floor must be between 0 and 1")
        if self.max_silence_s <= 0:
            raise ValueError("max_silence_s must be positive")
        if self.max_utterance_s <= self.max_silence_s:
            raise ValueError("max_utterance_s must exceed max_silence_s")


@dataclass(frozen=True, slots=True)
class SpeechStarted:
    timestamp: float
    text: str


@dataclass(frozen=True, slots=True)
class UtteranceReady:
    utterance: Utterance


@dataclass(frozen=True, slots=True)
class SegmentDiscarded:
    timestamp: float
    reason: str


@dataclass(frozen=True, slots=True)
class WakeDetected:
    timestamp: float
    phrase: str


type SegmenterEvent = SpeechStarted | UtteranceReady | SegmentDiscarded | WakeDetected


class UtteranceSegmenter:
    """Turns a stream of transcript updates into utterance events."""

    def __init__(
        self,
        config: SegmenterConfig,
        playback: PlaybackMonitor | None = None,
        wake: PhraseWakeDetector | None = None,
    ) -> None:
        if config.require_wake and wake is None:
            raise ValueError("require_wake needs a wake phrase detector")
        self._config = config
        self._playback = playback
        self._wake = wake
        self._state = SegmenterState.SILENT
        self._start = 0.0
        self._last_activity = 0.0
        self._text = ""
        self._confidence = 0.0
        self._armed_until: float | None = None

    @property
    def state(self) -> SegmenterState:
        return self._state

    @property
    def text(self) -> str:
        """Text of the segment in progress (empty when silent)."""
        return self._text

    def reset(self) -> None:
        """Abandon any segment in progress."""
        self._state = SegmenterState.SILENT
        self._start = 0.0
        self._last_activity = 0.0
        self._text = ""
        self._confidence = 0.0

    def process(
        self,
        frame: AudioFrame,
        transcript: PartialTranscript | None,
        voiced: bool = False,
    ) -> list[SegmenterEvent]:
        """Advance the state machine by one frame."""
        ts = frame.timestamp
        if self._playback is not None and self._playback.covers(ts):
            return self._suppressed(ts, transcript)
        if self._state is SegmenterState.SILENT:
            return self._silent(ts, transcript)
        return self._speech(ts, transcript, voiced)

    def _suppressed(
        self, ts: float, transcript: PartialTranscript | None
    ) -> list[SegmenterEvent]:
        events: list[SegmenterEvent] = []
        if self._state is not SegmenterState.SILENT:
            self.reset()
            events.append(SegmentDiscarded(ts, "assistant speaking"))
        if (
            self._config.policy is SuppressionPolicy.INTERRUPT_ON_WAKE
            and self._wake is not None
            and transcript is not None
        ):
            phrase = self._wake.find(transcript.text)
            if phrase:
                self._armed_until = ts + self._config.wake_window_s
                events.append(WakeDetected(ts, phrase))
        return events

    def _silent(
        self, ts: float, transcript: PartialTranscript | None
    ) -> list[SegmenterEvent]:
        if transcript is None:
            return []
        if not is_meaningful(transcript.text):
            return []
        if transcript.confidence < self._config.confidence_floor:
            return []

        self._state = SegmenterState.SPEECH_DETECTED
        self._start = ts
        self._last_activity = ts
        self._text = transcript.text
        self._confidence = transcript.confidence
        events: list[SegmenterEvent] = [SpeechStarted(ts, transcript.text)]
        if transcript.is_final:
            events.extend(self._finalize(ts))
        return events

    def _speech(
        self, ts: float, transcript: PartialTranscript | None, voiced: bool
    ) -> list[SegmenterEvent]:
        if voiced:
            self._last_activity = ts
        if transcript is not None:
            if transcript.is_final:
                self._text = transcript.text
                self._confidence = transcript.confidence
                return self._finalize(ts)
            if transcript.text and transcript.text != self._text:
                self._text = transcript.text
                self._confidence = transcript.confidence
                self._last_activity = ts

        if ts - self._last_activity >= self._config.max_silence_s:
            return self._finalize(ts)
        if ts - self._start >= self._config.max_utterance_s:
            return self._finalize(ts)
        return []

    def _finalize(self, ts: float) -> list[SegmenterEvent]:
        self._state = SegmenterState.FINALIZING
        utterance = Utterance(
            text=self._text.strip(),
            start=self._start,
            end=ts,
            confidence=self._confidence,
        )
        self.reset()

        if not utterance.text and utterance.duration < self._config.min_duration_s:
            return [SegmentDiscarded(ts, "noise")]

        if self._config.require_wake:
            return self._gate(utterance)
        return [UtteranceReady(utterance)]

    def _gate(self, utterance: Utterance) -> list[SegmenterEvent]:
        """Only pass utterances addressed to us with the wake phrase."""
        found, remainder = self._wake.strip(utterance.text)
        if found:
            if is_meaningful(remainder):
                self._armed_until = None
                return [UtteranceReady(replace(utterance, text=remainder))]
            self._armed_until = utterance.end + self._config.wake_window_s
            return [SegmentDiscarded(utterance.end, "wake phrase only")]

        if self._armed_until is not None and utterance.start <= self._armed_until:
            self._armed_until = None
            return [UtteranceReady(utterance)]
        return [SegmentDiscarded(utterance.end, "no wake phrase")]
