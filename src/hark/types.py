"""Core data types shared across hark modules."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from hark.protocols import SlotExtractor

_EMPTY: Mapping[str, str] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class AudioFrame:
    """One block of mono int16 PCM captured from the microphone."""

    samples: np.ndarray
    timestamp: float
    sample_rate: int

    @property
    def duration(self) -> float:
        return self.samples.size / self.sample_rate


@dataclass(frozen=True, slots=True)
class PartialTranscript:
    """Recognizer output so far; superseded until ``is_final`` arrives."""

    text: str
    confidence: float
    is_final: bool = False


@dataclass(frozen=True, slots=True)
class Utterance:
    """A finalized, segmented unit of recognized speech."""

    text: str
    start: float
    end: float
    confidence: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True, slots=True)
class IntentExemplar:
    """A canonical phrase with its precomputed, normalized embedding."""

    phrase: str
    embedding: np.ndarray
    intent_id: str
    order: int
    extractor: "SlotExtractor | None" = None


@dataclass(frozen=True, slots=True)
class IntentMatch:
    """An accepted resolution of an utterance to an intent."""

    intent_id: str
    score: float
    exemplar: IntentExemplar
    text: str = ""
    slots: Mapping[str, str] = _EMPTY


@dataclass(frozen=True, slots=True)
class NoMatch:
    """Nothing in the catalog scored above the acceptance threshold."""

    text: str
    best_score: float = 0.0
    best_intent: str | None = None


@dataclass(frozen=True, slots=True)
class ActionContext:
    """Everything a handler may look at when it runs."""

    action_id: str
    intent_id: str
    text: str
    slots: Mapping[str, str] = _EMPTY
    options: Mapping[str, Any] = _EMPTY


type HandlerResult = str | Mapping[str, Any] | None
type Handler = Callable[[ActionContext], HandlerResult]


@dataclass(frozen=True, slots=True)
class Action:
    """A registered side effect plus the phrase spoken afterwards."""

    action_id: str
    handler: Handler
    response: str = ""
    error_response: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ResponsePhrase:
    """Text handed to the synthesizer."""

    text: str
    action_id: str | None = None
    is_error: bool = False
