"""Frozen runtime configuration and its JSON loader."""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from hark.actions import ResponseConfig
from hark.audio.vad import VadConfig
from hark.catalog import BUNDLED_CATALOG
from hark.constants import (
    DEFAULT_ASR_MODEL_DIR,
    DEFAULT_AUDIO_QUEUE_MAXSIZE,
    DEFAULT_CATALOG_FILE,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DATA_DIR,
    DEFAULT_DATA_DIR_ENV,
    DEFAULT_ECHO_TAIL_S,
    DEFAULT_EMBEDDING_DIR,
    DEFAULT_ENERGY_THRESHOLD,
    DEFAULT_FRAME_MS,
    DEFAULT_OUTPUT_SAMPLE_RATE,
    DEFAULT_PLAYBACK_BLOCK,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TURN_TIMEOUT_S,
    DEFAULT_VAD_MODE,
    DEFAULT_VOICE_MODEL,
    DEFAULT_WAKE_PHRASES,
)
from hark.errors import FatalStartupFailure
from hark.resolver import ResolverConfig
from hark.segmenter import SegmenterConfig, SuppressionPolicy


@dataclass(frozen=True, slots=True)
class AudioConfig:
    """Capture and playback stream settings."""

    sample_rate: int = DEFAULT_SAMPLE_RATE
    frame_ms: int = DEFAULT_FRAME_MS
    queue_maxsize: int = DEFAULT_AUDIO_QUEUE_MAXSIZE
    input_device: int | str | None = None
    output_device: int | str | None = None
    output_sample_rate: int = DEFAULT_OUTPUT_SAMPLE_RATE
    playback_block: int = DEFAULT_PLAYBACK_BLOCK
    vad_mode: int = DEFAULT_VAD_MODE
    energy_threshold: float = DEFAULT_ENERGY_THRESHOLD
    echo_tail_s: float = DEFAULT_ECHO_TAIL_S

    def __post_init__(self) -> None:
        if self.frame_ms not in (10, 20, 30):
            raise ValueError("frame_ms must be one of: 10, 20, 30")
        if self.queue_maxsize < 1:
            raise ValueError("queue_maxsize must be at least 1")
        if self.playback_block < 1:
            raise ValueError("playback_block must be at least 1")

    @property
    def frame_samples(self) -> int:
        return self.sample_rate * self.frame_ms // 1000

    def vad(self) -> VadConfig:
        return VadConfig(
            frame_ms=self.frame_ms,
            mode=self.vad_mode,
            sample_rate=self.sample_rate,
            energy_threshold=self.energy_threshold,
        )


@dataclass(frozen=True, slots=True)
class AsrConfig:
    """Speech recognizer settings."""

    model_dir: str = DEFAULT_ASR_MODEL_DIR
    grammar_from_catalog: bool = False


@dataclass(frozen=True, slots=True)
class SynthConfig:
    """Speech synthesis settings. ``engine`` is ``piper`` or ``espeak``."""

    engine: str = "piper"
    voice: str = DEFAULT_VOICE_MODEL
    espeak_voice: str = "en-us"
    words_per_minute: int = 160
    precache: bool = True

    def __post_init__(self) -> None:
        if self.engine not in ("piper", "espeak"):
            raise ValueError("engine must be 'piper' or 'espeak'")


@dataclass(frozen=True, slots=True)
class PathsConfig:
    """Data directory layout; relative entries resolve against ``data_dir``."""

    data_dir: str = DEFAULT_DATA_DIR
    catalog: str = DEFAULT_CATALOG_FILE
    embedding_dir: str = DEFAULT_EMBEDDING_DIR

    def resolve(self, name: str) -> Path:
        path = Path(name).expanduser()
        if path.is_absolute():
            return path
        return Path(self.data_dir).expanduser() / path


@dataclass(frozen=True, slots=True)
class HarkConfig:
    """Top-level configuration loaded from ``<data dir>/config.json``."""

    paths: PathsConfig = PathsConfig()
    audio: AudioConfig = AudioConfig()
    asr: AsrConfig = AsrConfig()
    segmenter: SegmenterConfig = SegmenterConfig()
    resolver: ResolverConfig = ResolverConfig()
    synth: SynthConfig = SynthConfig()
    responses: ResponseConfig = ResponseConfig()
    wake_phrases: tuple[str, ...] = DEFAULT_WAKE_PHRASES
    turn_timeout_s: float = DEFAULT_TURN_TIMEOUT_S
    corrections: dict[str, str] = field(default_factory=dict)

    @property
    def catalog_path(self) -> Path:
        return self.paths.resolve(self.paths.catalog)

    @property
    def catalog_source(self) -> Path:
        """The catalog to load: the configured file, else the bundled one."""
        path = self.catalog_path
        return path if path.is_file() else BUNDLED_CATALOG

    @property
    def asr_model_path(self) -> Path:
        return self.paths.resolve(self.asr.model_dir)

    @property
    def embedding_path(self) -> Path:
        return self.paths.resolve(self.paths.embedding_dir)

    @property
    def voice_path(self) -> Path:
        return self.paths.resolve(self.synth.voice)


def _filter_fields(cls: type, raw: dict[str, Any]) -> dict[str, Any]:
    """Keep only keys that match dataclass fields."""
    valid = {f.name for f in fields(cls)}
    return {k: v for k, v in raw.items() if k in valid}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name, {})
    return raw if isinstance(raw, dict) else {}


def _segmenter_config(raw: dict[str, Any]) -> SegmenterConfig:
    values = _filter_fields(SegmenterConfig, raw)
    if "policy" in values:
        values["policy"] = SuppressionPolicy(values["policy"])
    return SegmenterConfig(**values)


def default_data_dir() -> str:
    return os.environ.get(DEFAULT_DATA_DIR_ENV) or DEFAULT_DATA_DIR


def load_config(
    path: str | Path | None = None, data_dir: str | Path | None = None
) -> HarkConfig:
    """Load hark configuration from a JSON file.

    Reads ``config.json`` from the data directory (``$HARK_DATA_DIR`` or
    ``~/.config/hark``) unless *path* is given. Every section is optional::

        {
          "audio": {"input_device": 2, "frame_ms": 30},
          "segmenter": {"max_silence_s": 1.0, "policy": "strict"},
          "resolver": {"threshold": 0.6},
          "synth": {"engine": "espeak"},
          "wake": {"phrases": ["hey hark"], "required": false},
          "corrections": {"lite": "light"}
        }

    Returns the defaults if the file does not exist. Malformed JSON or
    out-of-range values raise FatalStartupFailure.
    """
    base = str(data_dir) if data_dir is not None else default_data_dir()
    if path is not None:
        config_path = Path(path).expanduser()
    else:
        config_path = Path(base).expanduser() / DEFAULT_CONFIG_FILE

    paths = PathsConfig(data_dir=base)
    if not config_path.exists():
        return HarkConfig(paths=paths)

    try:
        with open(config_path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise FatalStartupFailure(
            f"cannot read config {config_path}: {exc}"
        ) from exc
    if not isinstance(data, dict):
        return HarkConfig(paths=paths)

    paths_raw = _filter_fields(PathsConfig, _section(data, "paths"))
    paths_raw.setdefault("data_dir", base)

    wake = _section(data, "wake")
    segmenter_raw = dict(_section(data, "segmenter"))
    if "required" in wake:
        segmenter_raw["require_wake"] = bool(wake["required"])
    if "window_s" in wake:
        segmenter_raw["wake_window_s"] = wake["window_s"]
    wake_phrases = DEFAULT_WAKE_PHRASES
    raw_phrases = wake.get("phrases")
    if isinstance(raw_phrases, list):
        wake_phrases = tuple(str(p) for p in raw_phrases if p)

    corrections: dict[str, str] = {}
    raw_corrections = data.get("corrections", {})
    if isinstance(raw_corrections, dict):
        corrections = {str(k): str(v) for k, v in raw_corrections.items()}

    turn_timeout = data.get("turn_timeout_s", DEFAULT_TURN_TIMEOUT_S)

    try:
        return HarkConfig(
            paths=PathsConfig(**paths_raw),
            audio=AudioConfig(**_filter_fields(AudioConfig, _section(data, "audio"))),
            asr=AsrConfig(**_filter_fields(AsrConfig, _section(data, "asr"))),
            segmenter=_segmenter_config(segmenter_raw),
            resolver=ResolverConfig(
                **_filter_fields(ResolverConfig, _section(data, "resolver"))
            ),
            synth=SynthConfig(**_filter_fields(SynthConfig, _section(data, "synth"))),
            responses=ResponseConfig(
                **_filter_fields(ResponseConfig, _section(data, "responses"))
            ),
            wake_phrases=wake_phrases,
            turn_timeout_s=float(turn_timeout),
            corrections=corrections,
        )
    except (TypeError, ValueError) as exc:
        raise FatalStartupFailure(f"invalid config {config_path}: {exc}") from exc
