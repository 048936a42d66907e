"""Embedding-based intent resolution.

Each catalog exemplar is embedded once at startup. At run time the utterance
is embedded with the same model and compared against every exemplar by
cosine similarity; with L2-normalized vectors that is a single matrix-vector
product. The lookup lives behind the ExemplarIndex protocol so a larger
catalog could swap in an approximate index without touching the resolver.
"""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Final

import numpy as np

from hark.catalog import IntentCatalog
from hark.constants import DEFAULT_THRESHOLD, DEFAULT_TIE_EPSILON
from hark.env import LOGGER
from hark.protocols import EmbedderLike, ExemplarIndex
from hark.text import apply_vocab
from hark.types import IntentExemplar, IntentMatch, NoMatch, Utterance

_UNIT_TOLERANCE: Final = 1e-6


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    """Acceptance threshold and tie-break tolerance."""

    threshold: float = DEFAULT_THRESHOLD
    tie_epsilon: float = DEFAULT_TIE_EPSILON

    def __post_init__(self) -> None:
        if not (-1.0 <= self.threshold <= 1.0):
            raise ValueError("threshold must be between -1 and 1")
        if self.tie_epsilon < 0:
            raise ValueError("tie_epsilon must be non-negative")


class RegexSlotExtractor:
    """Extracts slots from the named groups of a regular expression."""

    __slots__ = ("_pattern",)

    def __init__(self, pattern: str | re.Pattern[str]) -> None:
        self._pattern = (
            pattern
            if isinstance(pattern, re.Pattern)
            else re.compile(pattern, re.IGNORECASE)
        )

    @property
    def pattern(self) -> str:
        return self._pattern.pattern

    def extract(self, text: str) -> Mapping[str, str]:
        match = self._pattern.search(text)
        if not match:
            return {}
        return {k: v.strip() for k, v in match.groupdict().items() if v}


class LinearIndex:
    """Brute-force scan; fine for tens to hundreds of exemplars."""

    __slots__ = ("_exemplars", "_matrix")

    def __init__(self, exemplars: Sequence[IntentExemplar]) -> None:
        if not exemplars:
            raise ValueError("index needs at least one exemplar")
        self._exemplars = tuple(sorted(exemplars, key=lambda e: e.order))
        dims = {e.embedding.shape for e in self._exemplars}
        if len(dims) != 1:
            raise ValueError(f"exemplar embeddings differ in shape: {dims}")
        self._matrix = np.vstack(
            [e.embedding for e in self._exemplars]
        ).astype(np.float32)

    def __len__(self) -> int:
        return len(self._exemplars)

    @property
    def dimension(self) -> int:
        return int(self._matrix.shape[1])

    def scores(self, vector: np.ndarray) -> np.ndarray:
        """Cosine similarity of *vector* against every exemplar, in order."""
        return self._matrix @ vector.astype(np.float32).reshape(-1)

    def exemplar(self, position: int) -> IntentExemplar:
        return self._exemplars[position]


def build_exemplars(
    catalog: IntentCatalog, embedder: EmbedderLike
) -> list[IntentExemplar]:
    """Embed every catalog phrase in one batch, preserving catalog order."""
    rows: list[tuple[str, str, str | None]] = []
    for intent in catalog.intents:
        for example in intent.examples:
            rows.append(
                (example.text, intent.intent_id, example.slots or intent.slots)
            )

    matrix = embedder.embed([phrase for phrase, _, _ in rows])
    extractors: dict[str, RegexSlotExtractor] = {}
    exemplars: list[IntentExemplar] = []
    for order, ((phrase, intent_id, pattern), vector) in enumerate(
        zip(rows, matrix, strict=True)
    ):
        extractor = None
        if pattern:
            extractor = extractors.setdefault(
                pattern, RegexSlotExtractor(pattern)
            )
        exemplars.append(
            IntentExemplar(
                phrase=phrase,
                embedding=np.asarray(vector, dtype=np.float32),
                intent_id=intent_id,
                order=order,
                extractor=extractor,
            )
        )
    return exemplars


def _clamp(score: float) -> float:
    # Identical vectors score exactly 1.0 despite float noise.
    if score >= 1.0 - _UNIT_TOLERANCE:
        return 1.0
    return max(-1.0, float(score))


def _report(score: float) -> float:
    return round(_clamp(score), 6)


class IntentResolver:
    """Maps an utterance to the nearest catalog intent, or to NoMatch."""

    def __init__(
        self,
        embedder: EmbedderLike,
        index: ExemplarIndex,
        config: ResolverConfig | None = None,
        corrections: Mapping[str, str] | None = None,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._config = config or ResolverConfig()
        self._corrections = dict(corrections or {})

    @classmethod
    def from_catalog(
        cls,
        catalog: IntentCatalog,
        embedder: EmbedderLike,
        config: ResolverConfig | None = None,
        corrections: Mapping[str, str] | None = None,
    ) -> "IntentResolver":
        index = LinearIndex(build_exemplars(catalog, embedder))
        LOGGER.info(
            "Intent index ready: %d exemplars, %d intents",
            len(index),
            len(catalog.intents),
        )
        return cls(embedder, index, config, corrections)

    @property
    def config(self) -> ResolverConfig:
        return self._config

    def _prepare(self, text: str) -> str:
        if self._corrections:
            text = apply_vocab(text, self._corrections)
        return text.strip()

    def _scores(self, text: str) -> np.ndarray:
        vector = self._embedder.embed([text])[0]
        return self._index.scores(vector)

    def rank(
        self, text: str, k: int = 5
    ) -> list[tuple[IntentExemplar, float]]:
        """Top-*k* exemplars for *text*, best first, ties in catalog order."""
        text = self._prepare(text)
        if not text:
            return []
        scores = self._scores(text)
        # Stable sort keeps catalog order among equal scores.
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            (self._index.exemplar(int(i)), _report(scores[int(i)]))
            for i in order
        ]

    def resolve(self, utterance: Utterance | str) -> IntentMatch | NoMatch:
        """Resolve *utterance* against the catalog.

        Scores below the threshold return NoMatch; there is no fallback
        guessing. Exemplars within ``tie_epsilon`` of the best score are
        considered tied and the earliest in catalog order wins.
        """
        raw = utterance.text if isinstance(utterance, Utterance) else utterance
        text = self._prepare(raw)
        if not text:
            return NoMatch(text=raw)

        scores = self._scores(text)
        best = float(scores.max())
        tied = np.flatnonzero(scores >= best - self._config.tie_epsilon)
        exemplar = self._index.exemplar(int(tied[0]))
        score = _clamp(best)

        if score < self._config.threshold:
            LOGGER.debug(
                "No match for %r (best %s at %.3f)",
                text,
                exemplar.intent_id,
                score,
            )
            return NoMatch(
                text=text, best_score=score, best_intent=exemplar.intent_id
            )

        slots: Mapping[str, str] = {}
        if exemplar.extractor is not None:
            try:
                slots = dict(exemplar.extractor.extract(text))
            except Exception as exc:
                LOGGER.warning(
                    "Slot extraction failed for %s: %s", exemplar.intent_id, exc
                )
                slots = {}

        return IntentMatch(
            intent_id=exemplar.intent_id,
            score=_report(best),
            exemplar=exemplar,
            text=text,
            slots=slots,
        )
