"""Word count, words-per-minute and the speed based CEFR estimate."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..data.models import CEFRLevel

# Upper WPM bounds (exclusive) for the speed based estimate; anything faster is B2.
_FALLBACK_THRESHOLDS = (
    (50, CEFRLevel.A1),
    (80, CEFRLevel.A2),
    (120, CEFRLevel.B1),
)


@dataclass(frozen=True)
class Score:
    word_count: int
    wpm: int


def count_words(text: str) -> int:
    """Return the number of whitespace separated tokens in ``text``."""

    return len(text.split())


def words_per_minute(word_count: int, duration_seconds: float) -> int:
    if duration_seconds <= 0:
        return 0
    # Half-up rounding: 72.5 becomes 73.
    return int(math.floor(word_count / (duration_seconds / 60) + 0.5))


def fallback_cefr_level(wpm: int) -> CEFRLevel:
    for bound, level in _FALLBACK_THRESHOLDS:
        if wpm < bound:
            return level
    return CEFRLevel.B2


def score_transcript(text: str, duration_seconds: float) -> Score:
    word_count = count_words(text)
    return Score(word_count=word_count, wpm=words_per_minute(word_count, duration_seconds))


__all__ = [
    "Score",
    "count_words",
    "fallback_cefr_level",
    "score_transcript",
    "words_per_minute",
]
