"""Text helpers for post-ASR cleanup and matching."""

import re

_WORD_CHARS = re.compile(r"[^\w]")
_SPACES = re.compile(r"\s+")


def is_meaningful(text: str) -> bool:
    """Filter out noise so we do not trigger on junk output."""
    cleaned = _WORD_CHARS.sub("", text)
    return len(cleaned) >= 2


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = re.sub(r"[^\w\s']", " ", text.lower())
    return _SPACES.sub(" ", text).strip()


def apply_vocab(text: str, vocab: dict[str, str]) -> str:
    """Apply vocabulary corrections to text.

    Each key in *vocab* is matched as a case-insensitive whole word
    and replaced with the corresponding value.
    """
    for wrong, correct in vocab.items():
        pattern = re.compile(rf"\b{re.escape(wrong)}\b", re.IGNORECASE)
        text = pattern.sub(correct, text)
    return text
