"""Default configuration values for hark."""

from typing import Final

# Data directory layout
DEFAULT_DATA_DIR: Final = "~/.config/hark"
DEFAULT_DATA_DIR_ENV: Final = "HARK_DATA_DIR"
DEFAULT_CONFIG_FILE: Final = "config.json"
DEFAULT_CATALOG_FILE: Final = "catalog.json"
DEFAULT_ASR_MODEL_DIR: Final = "vosk-model-small-en-us-0.15"
DEFAULT_EMBEDDING_DIR: Final = "intents"
DEFAULT_EMBEDDING_WEIGHTS: Final = "model.onnx"
EMBEDDING_BUNDLE_FILES: Final = (
    "config.json",
    "tokenizer.json",
    "tokenizer_config.json",
    "special_tokens_map.json",
)
DEFAULT_VOICE_MODEL: Final = "voice/en_US-lessac-medium.onnx"

# Audio
DEFAULT_SAMPLE_RATE: Final = 16_000
DEFAULT_OUTPUT_SAMPLE_RATE: Final = 22_050
DEFAULT_FRAME_MS: Final = 30
DEFAULT_PLAYBACK_BLOCK: Final = 1024
DEFAULT_AUDIO_QUEUE_MAXSIZE: Final = 200
DEFAULT_VAD_MODE: Final = 2
DEFAULT_ENERGY_THRESHOLD: Final = 300.0

# Segmentation
DEFAULT_CONFIDENCE_FLOOR: Final = 0.3
DEFAULT_MAX_SILENCE_S: Final = 1.2
DEFAULT_MIN_DURATION_S: Final = 0.4
DEFAULT_MAX_UTTERANCE_S: Final = 20.0
DEFAULT_ECHO_TAIL_S: Final = 0.3
DEFAULT_WAKE_WINDOW_S: Final = 8.0
DEFAULT_WAKE_PHRASES: Final = ("hey hark",)

# Resolution
DEFAULT_THRESHOLD: Final = 0.5
DEFAULT_TIE_EPSILON: Final = 1e-4
DEFAULT_TURN_TIMEOUT_S: Final = 10.0
DEFAULT_COMMAND_TIMEOUT_S: Final = 5.0

# Responses
DEFAULT_NOT_UNDERSTOOD: Final = "Sorry, I didn't understand that."
DEFAULT_NOT_ACTIONABLE: Final = "Sorry, I can't do that yet."
DEFAULT_APOLOGY: Final = "Sorry, something went wrong. Please try again."
DEFAULT_ACKNOWLEDGEMENT: Final = "Okay."
