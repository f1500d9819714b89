from __future__ import annotations

import pytest

from oneminute.core.scoring import count_words, fallback_cefr_level, score_transcript, words_per_minute
from oneminute.data.models import CEFRLevel


def test_count_words_splits_on_any_whitespace():
    assert count_words("  I like\tcoffee \n very  much ") == 5
    assert count_words("") == 0
    assert count_words("   ") == 0


def test_words_per_minute_scales_to_a_minute():
    assert words_per_minute(60, 60) == 60
    assert words_per_minute(30, 20) == 90


def test_words_per_minute_rounds_half_up():
    # 29 words in 24 seconds is 72.5 words per minute.
    assert words_per_minute(29, 24) == 73


@pytest.mark.parametrize("duration", [0, -3])
def test_words_per_minute_is_zero_without_duration(duration):
    assert words_per_minute(12, duration) == 0


@pytest.mark.parametrize(
    ("wpm", "expected"),
    [
        (0, CEFRLevel.A1),
        (49, CEFRLevel.A1),
        (50, CEFRLevel.A2),
        (79, CEFRLevel.A2),
        (80, CEFRLevel.B1),
        (119, CEFRLevel.B1),
        (120, CEFRLevel.B2),
        (300, CEFRLevel.B2),
    ],
)
def test_fallback_level_boundaries(wpm, expected):
    assert fallback_cefr_level(wpm) is expected


def test_score_transcript_combines_count_and_speed():
    score = score_transcript("one two three four five", 10)

    assert score.word_count == 5
    assert score.wpm == 30
