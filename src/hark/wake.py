"""Wake phrase detection on recognized text.

A wake phrase is the one thing the segmenter listens for while the assistant
is talking, and optionally the prefix every command has to start with.
"""

import re
from collections.abc import Iterable

from hark.text import normalize


class PhraseWakeDetector:
    """Finds configured wake phrases as whole words in a transcript."""

    __slots__ = ("_phrases", "_pattern")

    def __init__(self, phrases: Iterable[str]) -> None:
        self._phrases = tuple(p for p in (normalize(x) for x in phrases) if p)
        if not self._phrases:
            raise ValueError("at least one wake phrase is required")
        # Longest first so "hey hark" wins over "hark".
        alternatives = sorted(self._phrases, key=len, reverse=True)
        self._pattern = re.compile(
            r"\b(" + "|".join(re.escape(p) for p in alternatives) + r")\b"
        )

    @property
    def phrases(self) -> tuple[str, ...]:
        return self._phrases

    def find(self, text: str) -> str | None:
        """Return the wake phrase contained in *text*, if any."""
        match = self._pattern.search(normalize(text))
        return match.group(1) if match else None

    def strip(self, text: str) -> tuple[bool, str]:
        """Split a leading wake phrase off *text*.

        Returns ``(True, remainder)`` when *text* starts with a wake phrase,
        else ``(False, text)``.
        """
        cleaned = normalize(text)
        match = self._pattern.match(cleaned)
        if not match:
            return False, text
        return True, cleaned[match.end() :].strip()
