"""Tests for hark.text: vocabulary correction and text cleanup."""

from __future__ import annotations

from hark.text import apply_vocab, is_meaningful, normalize


class TestApplyVocab:
    def test_case_insensitive_replacement(self) -> None:
        result = apply_vocab("turn on the LITE", {"lite": "light"})
        assert result == "turn on the light"

    def test_multiple_replacements(self) -> None:
        vocab = {"lite": "light", "kitchin": "kitchen"}
        result = apply_vocab("kitchin lite on", vocab)
        assert result == "kitchen light on"

    def test_whole_words_only(self) -> None:
        assert apply_vocab("polite", {"lite": "light"}) == "polite"

    def test_empty_vocab_no_change(self) -> None:
        text = "hello world"
        assert apply_vocab(text, {}) == text


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize("Hey, Hark!  What's up?") == "hey hark what's up"

    def test_empty(self) -> None:
        assert normalize("  ...  ") == ""


class TestIsMeaningful:
    def test_rejects_noise(self) -> None:
        assert not is_meaningful("")
        assert not is_meaningful("a")
        assert not is_meaningful(" . , ")

    def test_accepts_words(self) -> None:
        assert is_meaningful("on")
        assert is_meaningful("turn on the light")
