"""Tests for hark.embedding: pooling, normalization and bundle checks."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest

from hark.embedding import OnnxEmbedder, l2_normalize, load_embedding_model, mean_pool
from hark.errors import FatalStartupFailure


class FakeTokenizer:
    """Pads every text to 3 tokens; the mask marks one token per word."""

    def __call__(self, texts, padding, truncation, max_length, return_tensors):
        mask = np.zeros((len(texts), 3), dtype=np.int64)
        for row, text in enumerate(texts):
            mask[row, : min(3, len(text.split()))] = 1
        return {
            "input_ids": np.arange(len(texts) * 3).reshape(len(texts), 3),
            "attention_mask": mask,
        }


class FakeSession:
    def __init__(self, inputs=("input_ids", "attention_mask", "token_type_ids")):
        self._inputs = [SimpleNamespace(name=n) for n in inputs]
        self.feeds: dict = {}

    def get_inputs(self):
        return self._inputs

    def run(self, outputs, feeds):
        self.feeds = feeds
        batch = feeds["input_ids"].shape[0]
        hidden = np.zeros((batch, 3, 4), dtype=np.float32)
        hidden[:, 0, 0] = 3.0
        hidden[:, 1, 1] = 4.0
        hidden[:, 2, 2] = 100.0
        return [hidden]


class TestMath:
    def test_l2_normalize(self) -> None:
        out = l2_normalize(np.array([[3.0, 4.0], [0.0, 0.0]]))
        np.testing.assert_allclose(out, [[0.6, 0.8], [0.0, 0.0]])

    def test_mean_pool_ignores_padding(self) -> None:
        hidden = np.array([[[1.0, 1.0], [3.0, 3.0], [50.0, 50.0]]])
        mask = np.array([[1, 1, 0]])
        np.testing.assert_allclose(mean_pool(hidden, mask), [[2.0, 2.0]])


class TestOnnxEmbedder:
    def test_embeds_and_normalizes(self) -> None:
        session = FakeSession()
        embedder = OnnxEmbedder(FakeTokenizer(), session)
        out = embedder.embed(["turn on"])
        # Third token is padding, so only (3, 4, 0, 0) / 2 survives.
        np.testing.assert_allclose(out, [[0.6, 0.8, 0.0, 0.0]], atol=1e-6)
        assert out.dtype == np.float32

    def test_adds_token_type_ids(self) -> None:
        session = FakeSession()
        OnnxEmbedder(FakeTokenizer(), session).embed(["a b c"])
        assert np.array_equal(session.feeds["token_type_ids"], np.zeros((1, 3)))

    def test_only_feeds_model_inputs(self) -> None:
        session = FakeSession(inputs=("input_ids", "attention_mask"))
        OnnxEmbedder(FakeTokenizer(), session).embed(["a"])
        assert set(session.feeds) == {"input_ids", "attention_mask"}

    def test_dimension(self) -> None:
        assert OnnxEmbedder(FakeTokenizer(), FakeSession()).dimension == 4


class TestLoadEmbeddingModel:
    def test_missing_bundle_files_are_fatal(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text("{}")
        with pytest.raises(FatalStartupFailure, match="model.onnx"):
            load_embedding_model(tmp_path)
