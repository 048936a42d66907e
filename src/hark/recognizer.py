"""Streaming speech recognition on top of Vosk (Kaldi).

The recognizer is fed frame by frame from the single listening task. Each
call yields at most one transcript update: a final result when Kaldi's
endpointer closes the utterance, otherwise a partial whose text changed
since the previous update.
"""

import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from hark.env import LOGGER, suppress_output
from hark.errors import FatalStartupFailure, RecognitionFault
from hark.text import normalize
from hark.types import AudioFrame, PartialTranscript


def load_asr_model(model_dir: str | Path) -> Any:
    """Load a Vosk model directory, failing startup if it is unusable."""
    path = Path(model_dir).expanduser()
    if not path.is_dir():
        raise FatalStartupFailure(f"speech model directory not found: {path}")

    import vosk

    vosk.SetLogLevel(-1)
    try:
        with suppress_output():
            return vosk.Model(str(path))
    except Exception as exc:
        raise FatalStartupFailure(
            f"failed to load speech model from {path}: {exc}"
        ) from exc


def build_grammar(phrases: Iterable[str]) -> list[str]:
    """Restrict decoding to the words the catalog can actually use.

    Returns a Vosk phrase list: one entry per distinct normalized phrase plus
    the ``[unk]`` catch-all so out-of-vocabulary speech still decodes.
    """
    seen: dict[str, None] = {}
    for phrase in phrases:
        cleaned = normalize(phrase)
        if cleaned:
            seen.setdefault(cleaned, None)
    return [*seen, "[unk]"]


def _mean_confidence(
    words: Sequence[dict[str, Any]] | None, text: str
) -> float:
    """Average per-word confidence; engines without word info count as sure."""
    if not words:
        return 1.0 if text else 0.0
    return sum(float(w.get("conf", 0.0)) for w in words) / len(words)


class SpeechRecognizer:
    """Per-session wrapper around a ``vosk.KaldiRecognizer``.

    Not safe to share across concurrent callers; the coordinator owns one
    instance and only touches it from its listening task.
    """

    __slots__ = ("_model", "_sample_rate", "_grammar", "_rec", "_last_partial")

    def __init__(
        self,
        model: Any,
        sample_rate: int,
        grammar: Sequence[str] | None = None,
    ) -> None:
        self._model = model
        self._sample_rate = sample_rate
        self._grammar = list(grammar) if grammar else None
        self._rec = self._create()
        self._last_partial = ""

    def _create(self) -> Any:
        import vosk

        if self._grammar:
            rec = vosk.KaldiRecognizer(
                self._model, self._sample_rate, json.dumps(self._grammar)
            )
        else:
            rec = vosk.KaldiRecognizer(self._model, self._sample_rate)
        rec.SetWords(True)
        rec.SetPartialWords(True)
        return rec

    def feed(self, frame: AudioFrame) -> PartialTranscript | None:
        """Decode one frame; return a transcript update if there is one."""
        if frame.sample_rate != self._sample_rate:
            raise RecognitionFault(
                f"frame rate {frame.sample_rate} != recognizer rate "
                f"{self._sample_rate}"
            )
        try:
            finalized = self._rec.AcceptWaveform(frame.samples.tobytes())
            raw = self._rec.Result() if finalized else self._rec.PartialResult()
            result = json.loads(raw)
        except Exception as exc:
            raise RecognitionFault(f"decoder error: {exc}") from exc

        if finalized:
            self._last_partial = ""
            text = result.get("text", "").strip()
            return PartialTranscript(
                text=text,
                confidence=_mean_confidence(result.get("result"), text),
                is_final=True,
            )

        text = result.get("partial", "").strip()
        if text == self._last_partial:
            return None
        self._last_partial = text
        return PartialTranscript(
            text=text,
            confidence=_mean_confidence(result.get("partial_result"), text),
        )

    def reset(self) -> None:
        """Drop decoder state so the next frame starts a new utterance."""
        self._last_partial = ""
        try:
            self._rec.Reset()
        except Exception as exc:
            LOGGER.warning("Recognizer reset failed, recreating: %s", exc)
            self._rec = self._create()
