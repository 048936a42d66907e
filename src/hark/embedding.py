"""Sentence embeddings from a local ONNX model bundle.

The bundle is a directory holding the tokenizer files (``tokenizer.json``,
``tokenizer_config.json``, ``special_tokens_map.json``), the model
``config.json`` and the exported ``model.onnx``. Nothing is downloaded: the
directory is provisioned ahead of time and treated as read-only.
"""

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np

from hark.constants import DEFAULT_EMBEDDING_WEIGHTS, EMBEDDING_BUNDLE_FILES
from hark.env import suppress_output
from hark.errors import FatalStartupFailure


def l2_normalize(matrix: np.ndarray) -> np.ndarray:
    """Scale each row to unit length, leaving all-zero rows untouched."""
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return (matrix / norms).astype(np.float32)


def mean_pool(hidden: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
    """Average token vectors, ignoring padding positions."""
    mask = attention_mask[..., None].astype(np.float32)
    summed = (hidden * mask).sum(axis=1)
    counts = np.clip(mask.sum(axis=1), 1e-9, None)
    return summed / counts


class OnnxEmbedder:
    """Tokenizer + ONNX Runtime session producing normalized embeddings."""

    def __init__(
        self,
        tokenizer: Any,
        session: Any,
        max_length: int = 128,
    ) -> None:
        self._tokenizer = tokenizer
        self._session = session
        self._max_length = max_length
        self._input_names = {i.name for i in session.get_inputs()}
        self._dimension: int | None = None

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = int(self.embed(["dimension probe"]).shape[1])
        return self._dimension

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Embed *texts* into a ``(len(texts), dim)`` float32 matrix."""
        encoded = self._tokenizer(
            list(texts),
            padding=True,
            truncation=True,
            max_length=self._max_length,
            return_tensors="np",
        )
        feeds = {
            name: np.asarray(value, dtype=np.int64)
            for name, value in encoded.items()
            if name in self._input_names
        }
        if "token_type_ids" in self._input_names and "token_type_ids" not in feeds:
            feeds["token_type_ids"] = np.zeros_like(feeds["input_ids"])

        outputs = self._session.run(None, feeds)
        hidden = outputs[0]
        if hidden.ndim == 3:
            pooled = mean_pool(hidden, encoded["attention_mask"])
        else:
            pooled = hidden
        return l2_normalize(pooled)


def load_embedding_model(bundle_dir: str | Path) -> OnnxEmbedder:
    """Load tokenizer and ONNX session from *bundle_dir*.

    Every bundle file must be present; a missing file is a fatal startup
    failure because intent resolution cannot work without it.
    """
    path = Path(bundle_dir).expanduser()
    required = (*EMBEDDING_BUNDLE_FILES, DEFAULT_EMBEDDING_WEIGHTS)
    missing = [name for name in required if not (path / name).is_file()]
    if missing:
        raise FatalStartupFailure(
            f"embedding bundle {path} is missing: {', '.join(missing)}"
        )

    import onnxruntime
    import transformers
    from transformers import AutoTokenizer

    logging.getLogger("transformers").setLevel(logging.ERROR)

    options = onnxruntime.SessionOptions()
    options.intra_op_num_threads = 1
    options.inter_op_num_threads = 1
    options.log_severity_level = 3

    prev_verbosity = transformers.logging.get_verbosity()
    transformers.logging.set_verbosity_error()
    try:
        with suppress_output():
            tokenizer = AutoTokenizer.from_pretrained(
                str(path), local_files_only=True
            )
            session = onnxruntime.InferenceSession(
                str(path / DEFAULT_EMBEDDING_WEIGHTS),
                sess_options=options,
                providers=["CPUExecutionProvider"],
            )
    except Exception as exc:
        raise FatalStartupFailure(
            f"failed to load embedding model from {path}: {exc}"
        ) from exc
    finally:
        transformers.logging.set_verbosity(prev_verbosity)

    return OnnxEmbedder(tokenizer, session)
