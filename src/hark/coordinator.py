"""Pipeline coordinator: the assistant's state machine.

One listening task pulls frames from the channel and runs recognition and
segmentation strictly in order. Finished utterances start a turn task that
resolves, dispatches and speaks. Listening continues while a turn runs;
an utterance finalized in the meantime waits in a single pending slot
(the latest one wins) and is handled when the current turn ends.

Blocking calls (decoding, embedding, handlers, playback) run in worker
threads via ``asyncio.to_thread``. Every per-utterance failure ends in a
spoken apology; nothing short of cancellation escapes a turn.
"""

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from hark.actions import ActionDispatcher
from hark.audio.channel import FrameChannel
from hark.audio.vad import VoiceActivityDetector
from hark.constants import DEFAULT_TURN_TIMEOUT_S
from hark.env import LOGGER
from hark.errors import RecognitionFault
from hark.protocols import RecognizerLike
from hark.resolver import IntentResolver
from hark.segmenter import (
    SegmentDiscarded,
    SegmenterState,
    SpeechStarted,
    UtteranceReady,
    UtteranceSegmenter,
    WakeDetected,
)
from hark.synthesizer import SpeechSynthesizer
from hark.types import AudioFrame, IntentMatch, ResponsePhrase, Utterance


class PipelineState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    AWAITING_FINAL = "awaiting_final"
    RESOLVING = "resolving"
    ACTING = "acting"
    SPEAKING = "speaking"


@dataclass(frozen=True, slots=True)
class TurnRecord:
    """One handled utterance, for the history view."""

    heard: str
    intent_id: str | None
    score: float | None
    reply: str
    elapsed_ms: float
    interrupted: bool = False


@dataclass(slots=True)
class PipelineStatus:
    """Mutable snapshot of the pipeline read by the UI."""

    state: PipelineState = PipelineState.IDLE
    partial: str = ""
    pending: str = ""
    history: deque[TurnRecord] = field(default_factory=lambda: deque(maxlen=20))
    queue_size: int = 0
    dropped_frames: int = 0
    recognizer_faults: int = 0
    asr_ms: float | None = None
    resolve_ms: float | None = None
    dispatch_ms: float | None = None


class PipelineCoordinator:
    """Drives frames through recognition, resolution, action and speech."""

    def __init__(
        self,
        channel: FrameChannel,
        recognizer: RecognizerLike,
        segmenter: UtteranceSegmenter,
        resolver: IntentResolver,
        dispatcher: ActionDispatcher,
        synthesizer: SpeechSynthesizer,
        vad: VoiceActivityDetector | None = None,
        turn_timeout_s: float = DEFAULT_TURN_TIMEOUT_S,
        status: PipelineStatus | None = None,
    ) -> None:
        self._channel = channel
        self._recognizer = recognizer
        self._segmenter = segmenter
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._synth = synthesizer
        self._vad = vad
        self._turn_timeout_s = turn_timeout_s
        self.status = status or PipelineStatus()

        self._state = PipelineState.IDLE
        self._turn: asyncio.Task[None] | None = None
        self._pending: Utterance | None = None
        self._cancel = threading.Event()
        self._reset_after_playback = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def busy(self) -> bool:
        """Whether a turn (resolve, act or speak) is in flight."""
        return self._turn is not None

    def _set_state(self, state: PipelineState) -> None:
        if state is self._state:
            return
        LOGGER.debug("State %s -> %s", self._state.name, state.name)
        self._state = state
        self.status.state = state

    def _listening_state(self) -> PipelineState:
        if self._segmenter.state is SegmenterState.SPEECH_DETECTED:
            return PipelineState.AWAITING_FINAL
        return PipelineState.LISTENING

    def _reset_recognition(self) -> None:
        self._recognizer.reset()
        self._segmenter.reset()
        if self._vad is not None:
            self._vad.reset()
        self.status.partial = ""

    # ------------------------------------------------------------------
    # Listening
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Consume frames until cancelled."""
        self._set_state(PipelineState.LISTENING)
        try:
            while True:
                frame = await self._channel.get()
                await self.process_frame(frame)
        finally:
            await self.shutdown()

    async def process_frame(self, frame: AudioFrame) -> None:
        """Recognize and segment one frame, then act on the events."""
        self.status.queue_size = self._channel.qsize()
        self.status.dropped_frames = self._channel.dropped

        monitor = self._synth.monitor
        if self._reset_after_playback and monitor.ended_before(frame.timestamp):
            # Drop whatever the decoder heard of our own voice.
            self._reset_after_playback = False
            self._reset_recognition()

        voiced = self._vad.is_speech(frame.samples) if self._vad else False

        start = time.perf_counter()
        try:
            transcript = await asyncio.to_thread(self._recognizer.feed, frame)
        except RecognitionFault as exc:
            LOGGER.warning("Recognizer fault, resetting: %s", exc)
            self.status.recognizer_faults += 1
            self._reset_recognition()
            if not self.busy:
                self._set_state(PipelineState.LISTENING)
            return
        self.status.asr_ms = (time.perf_counter() - start) * 1000

        if transcript is not None and not transcript.is_final:
            if not monitor.covers(frame.timestamp):
                self.status.partial = transcript.text

        events = self._segmenter.process(frame, transcript, voiced)
        if any(not isinstance(e, SpeechStarted) for e in events):
            # Segment closed: the next one must not inherit decoder context.
            self._recognizer.reset()
        for event in events:
            match event:
                case SpeechStarted():
                    if not self.busy:
                        self._set_state(PipelineState.AWAITING_FINAL)
                case UtteranceReady(utterance=utterance):
                    self.status.partial = ""
                    self.submit(utterance)
                case SegmentDiscarded(reason=reason):
                    LOGGER.debug("Segment discarded: %s", reason)
                    self.status.partial = ""
                    if not self.busy:
                        self._set_state(PipelineState.LISTENING)
                case WakeDetected(phrase=phrase):
                    self.interrupt(phrase)

    def interrupt(self, reason: str = "") -> None:
        """Cancel playback in progress; the turn ends when it stops."""
        if self._state is not PipelineState.SPEAKING:
            return
        LOGGER.info("Playback interrupted%s", f" by {reason!r}" if reason else "")
        self._pending = None
        self.status.pending = ""
        self._cancel.set()

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def submit(self, utterance: Utterance) -> None:
        """Start a turn for *utterance*, or park it if one is running."""
        if self.busy:
            if self._pending is not None:
                LOGGER.info("Replacing pending utterance %r", self._pending.text)
            self._pending = utterance
            self.status.pending = utterance.text
            return
        self._turn = asyncio.create_task(self._turns(utterance))

    async def wait_idle(self) -> None:
        """Wait until no turn is in flight."""
        while self._turn is not None:
            await asyncio.wait({self._turn})

    async def _turns(self, utterance: Utterance | None) -> None:
        try:
            while utterance is not None:
                await self._handle(utterance)
                utterance, self._pending = self._pending, None
                self.status.pending = ""
        finally:
            self._turn = None
            self._set_state(self._listening_state())

    async def _handle(self, utterance: Utterance) -> None:
        LOGGER.info("Heard: %r", utterance.text)
        self._set_state(PipelineState.RESOLVING)
        started = time.perf_counter()
        intent_id: str | None = None
        score: float | None = None

        try:
            async with asyncio.timeout(self._turn_timeout_s):
                outcome = await asyncio.to_thread(
                    self._resolver.resolve, utterance
                )
                resolved = time.perf_counter()
                self.status.resolve_ms = (resolved - started) * 1000
                if isinstance(outcome, IntentMatch):
                    intent_id, score = outcome.intent_id, outcome.score
                    LOGGER.info("Intent %s (%.3f)", intent_id, score)
                else:
                    score = outcome.best_score
                    LOGGER.info("No match (best %.3f)", outcome.best_score)

                self._set_state(PipelineState.ACTING)
                phrase = await asyncio.to_thread(
                    self._dispatcher.dispatch, outcome
                )
                self.status.dispatch_ms = (time.perf_counter() - resolved) * 1000
        except TimeoutError:
            LOGGER.error(
                "Turn timed out after %.1fs for %r",
                self._turn_timeout_s,
                utterance.text,
            )
            phrase = self._apology()
        except Exception as exc:
            LOGGER.error("Turn failed for %r: %s", utterance.text, exc)
            phrase = self._apology()

        completed = await self._speak(phrase)
        self.status.history.append(
            TurnRecord(
                heard=utterance.text,
                intent_id=intent_id,
                score=score,
                reply=phrase.text,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                interrupted=not completed,
            )
        )

    def _apology(self) -> ResponsePhrase:
        return ResponsePhrase(
            text=self._dispatcher.responses.apology, is_error=True
        )

    async def _speak(self, phrase: ResponsePhrase) -> bool:
        if not phrase.text.strip():
            return True
        self._set_state(PipelineState.SPEAKING)
        self._cancel = threading.Event()
        LOGGER.info("Saying: %r", phrase.text)
        try:
            return await asyncio.to_thread(self._synth.speak, phrase, self._cancel)
        except Exception as exc:
            LOGGER.error("Playback failed: %s", exc)
            return False
        finally:
            self._reset_after_playback = True

    async def shutdown(self) -> None:
        """Stop playback and wait for the turn in flight to wind down."""
        turn = self._turn
        if turn is None:
            self._set_state(PipelineState.IDLE)
            return
        self._pending = None
        self._cancel.set()
        if self._state is not PipelineState.SPEAKING:
            turn.cancel()
        await asyncio.gather(turn, return_exceptions=True)
        self._set_state(PipelineState.IDLE)
