from __future__ import annotations

import json

import pytest

from oneminute.data.models import CEFRLevel
from oneminute.services.errors import MalformedFeedback
from oneminute.services.feedback.base import FeedbackContext
from oneminute.services.feedback.dummy import DummyFeedbackService
from oneminute.services.feedback.prompt import build_user_prompt, feedback_or_fallback, parse_feedback

VALID = {
    "cefrLevel": "b1",
    "cefrExplanation": "Connected sentences.",
    "goodPoints": ["Good vocabulary", "Clear structure"],
    "grammarNotes": ["Use 'went' instead of 'goed'."],
    "encouragement": "Great effort!",
}


def test_parse_feedback_accepts_fenced_json():
    raw = "```json\n" + json.dumps(VALID) + "\n```"

    feedback = parse_feedback(raw)

    assert feedback.cefr_level is CEFRLevel.B1
    assert feedback.good_points == ["Good vocabulary", "Clear structure"]


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        json.dumps({key: value for key, value in VALID.items() if key != "encouragement"}),
        json.dumps({**VALID, "cefrLevel": "D4"}),
    ],
)
def test_parse_feedback_rejects_unusable_answers(raw):
    with pytest.raises(MalformedFeedback):
        parse_feedback(raw)


@pytest.mark.parametrize(
    ("wpm", "expected"),
    [(49, CEFRLevel.A1), (50, CEFRLevel.A2), (80, CEFRLevel.B1), (120, CEFRLevel.B2)],
)
def test_malformed_answer_falls_back_to_speed_estimate(wpm, expected):
    feedback = feedback_or_fallback("Sorry, I cannot help with that.", wpm)

    assert feedback.cefr_level is expected
    assert feedback.cefr_explanation == "Level estimated based on speaking speed."
    assert len(feedback.good_points) == 2


def test_user_prompt_mentions_all_numbers():
    context = FeedbackContext(transcript="I like tea", topic="Food", word_count=3, wpm=18, duration_seconds=10)

    prompt = build_user_prompt(context)

    assert '"Food"' in prompt
    assert "Word count: 3" in prompt
    assert "Words per minute: 18" in prompt
    assert '"I like tea"' in prompt


def test_dummy_feedback_uses_speed_estimate():
    context = FeedbackContext(transcript="", topic="Food", word_count=90, wpm=90, duration_seconds=60)

    feedback = DummyFeedbackService().generate_feedback(context)

    assert feedback.cefr_level is CEFRLevel.B1
    assert "90 words" in feedback.cefr_explanation
