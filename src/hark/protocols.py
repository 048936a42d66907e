"""Structural type protocols for the pluggable pipeline stages."""

from collections.abc import Iterator, Mapping, Sequence
from typing import Protocol

import numpy as np

from hark.types import AudioFrame, IntentExemplar, PartialTranscript


class RecognizerLike(Protocol):
    """Streaming speech recognizer fed one frame at a time."""

    def feed(self, frame: AudioFrame) -> PartialTranscript | None: ...

    def reset(self) -> None: ...


class EmbedderLike(Protocol):
    """Sentence embedder returning one L2-normalized row per text."""

    @property
    def dimension(self) -> int: ...

    def embed(self, texts: Sequence[str]) -> np.ndarray: ...


class ExemplarIndex(Protocol):
    """Nearest-neighbour lookup over exemplar embeddings."""

    def __len__(self) -> int: ...

    def scores(self, vector: np.ndarray) -> np.ndarray: ...

    def exemplar(self, position: int) -> IntentExemplar: ...


class SlotExtractor(Protocol):
    """Pulls named parameters out of an utterance once an intent matched."""

    def extract(self, text: str) -> Mapping[str, str]: ...


class SynthesisEngine(Protocol):
    """Text-to-speech engine yielding int16 chunks and their sample rate."""

    def synthesize(self, text: str) -> Iterator[tuple[np.ndarray, int]]: ...


class AudioSinkLike(Protocol):
    """Output device that plays int16 blocks and can drop queued audio."""

    @property
    def sample_rate(self) -> int: ...

    @property
    def blocksize(self) -> int: ...

    def write(self, block: np.ndarray) -> None: ...

    def abort(self) -> None: ...
