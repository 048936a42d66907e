"""Shared test fixtures: no model files or audio hardware needed."""

from __future__ import annotations

import re
import time
from collections.abc import Iterable, Iterator
from typing import Any

import numpy as np
import pytest

from hark.actions import ActionDispatcher, ActionRegistry
from hark.audio.playback import PlaybackMonitor
from hark.catalog import IntentCatalog, parse_catalog
from hark.resolver import IntentResolver
from hark.synthesizer import SpeechSynthesizer
from hark.types import AudioFrame, PartialTranscript

SAMPLE_RATE = 16_000
FRAME_SAMPLES = 480


class FakeEmbedder:
    """Bag-of-words embedder: one dimension per distinct word seen.

    Identical texts embed identically and texts sharing no words are
    orthogonal, which makes resolver scores easy to reason about.
    """

    def __init__(self, dimension: int = 512) -> None:
        self._dimension = dimension
        self._vocab: dict[str, int] = {}
        self.calls: list[list[str]] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def _index(self, word: str) -> int:
        if word not in self._vocab:
            self._vocab[word] = len(self._vocab)
        return self._vocab[word] % self._dimension

    def embed(self, texts: Iterable[str]) -> np.ndarray:
        texts = list(texts)
        self.calls.append(texts)
        out = np.zeros((len(texts), self._dimension), dtype=np.float32)
        for row, text in enumerate(texts):
            for word in re.findall(r"[\w']+", text.lower()):
                out[row, self._index(word)] += 1.0
            norm = np.linalg.norm(out[row])
            if norm:
                out[row] /= norm
        return out


class ScriptedRecognizer:
    """Replays a script of transcript updates, one entry per frame.

    Entries may be None (no update), a PartialTranscript, or an exception
    instance to raise from ``feed``.
    """

    def __init__(self, script: Iterable[Any] = ()) -> None:
        self.script = list(script)
        self.fed = 0
        self.resets = 0

    def extend(self, entries: Iterable[Any]) -> None:
        self.script.extend(entries)

    def feed(self, frame: AudioFrame) -> PartialTranscript | None:
        self.fed += 1
        if not self.script:
            return None
        entry = self.script.pop(0)
        if isinstance(entry, BaseException):
            raise entry
        return entry

    def reset(self) -> None:
        self.resets += 1


class FakeEngine:
    """Synthesis engine producing silence of a fixed length per phrase."""

    def __init__(self, samples: int = 4096, sample_rate: int = 22_050) -> None:
        self.samples = samples
        self.sample_rate = sample_rate
        self.texts: list[str] = []

    def synthesize(self, text: str) -> Iterator[tuple[np.ndarray, int]]:
        self.texts.append(text)
        yield np.zeros(self.samples, dtype=np.int16), self.sample_rate


class FakeSink:
    """Output device recording written blocks; optionally paced."""

    def __init__(
        self, sample_rate: int = 22_050, blocksize: int = 1024, delay: float = 0.0
    ) -> None:
        self._sample_rate = sample_rate
        self._blocksize = blocksize
        self.delay = delay
        self.blocks: list[np.ndarray] = []
        self.aborts = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def blocksize(self) -> int:
        return self._blocksize

    def write(self, block: np.ndarray) -> None:
        self.blocks.append(block)
        if self.delay:
            time.sleep(self.delay)

    def abort(self) -> None:
        self.aborts += 1


def make_frame(
    timestamp: float,
    samples: int = FRAME_SAMPLES,
    amplitude: int = 0,
    sample_rate: int = SAMPLE_RATE,
) -> AudioFrame:
    return AudioFrame(
        samples=np.full(samples, amplitude, dtype=np.int16),
        timestamp=timestamp,
        sample_rate=sample_rate,
    )


def partial(text: str, confidence: float = 0.9) -> PartialTranscript:
    return PartialTranscript(text=text, confidence=confidence)


def final(text: str, confidence: float = 0.9) -> PartialTranscript:
    return PartialTranscript(text=text, confidence=confidence, is_final=True)


CATALOG_DATA: dict[str, Any] = {
    "intents": {
        "turn_on_light": {
            "examples": ["turn on the light", "lights on"],
            "action": "lights.on",
            "slots": "(?P<room>kitchen|bedroom)",
        },
        "turn_off_light": {
            "examples": ["turn off the light", "lights off"],
            "action": "lights.off",
        },
        "tell_time": {
            "examples": ["what time is it"],
            "action": "time",
        },
        "open_garage": {
            "examples": ["open the garage"],
            "action": "garage.open",
        },
    },
    "actions": {
        "lights.on": {"handler": "respond", "response": "Turning on the light."},
        "lights.off": "Turning off the light.",
        "time": {"handler": "clock.time"},
    },
}


@pytest.fixture
def catalog() -> IntentCatalog:
    return parse_catalog(CATALOG_DATA)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def resolver(catalog: IntentCatalog, embedder: FakeEmbedder) -> IntentResolver:
    return IntentResolver.from_catalog(catalog, embedder)


@pytest.fixture
def dispatcher(catalog: IntentCatalog) -> ActionDispatcher:
    return ActionDispatcher(
        ActionRegistry.from_catalog(catalog), catalog.intent_actions()
    )


@pytest.fixture
def monitor() -> PlaybackMonitor:
    return PlaybackMonitor(echo_tail=0.0)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def synthesizer(
    fake_engine: FakeEngine, fake_sink: FakeSink, monitor: PlaybackMonitor
) -> SpeechSynthesizer:
    return SpeechSynthesizer(fake_engine, fake_sink, monitor)
