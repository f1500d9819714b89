"""Feedback generation abstractions and the speed based fallback."""

from __future__ import annotations

import abc
from dataclasses import dataclass

from ...core.scoring import fallback_cefr_level
from ...data.models import FeedbackResult


@dataclass(frozen=True)
class FeedbackContext:
    transcript: str
    topic: str
    word_count: int
    wpm: int
    duration_seconds: int


class FeedbackService(abc.ABC):
    @abc.abstractmethod
    def generate_feedback(self, context: FeedbackContext) -> FeedbackResult:
        raise NotImplementedError


def fallback_feedback(wpm: int) -> FeedbackResult:
    """Feedback used whenever the language model answer is unusable."""

    return FeedbackResult(
        cefr_level=fallback_cefr_level(wpm),
        cefr_explanation="Level estimated based on speaking speed.",
        good_points=[
            "Great job attempting to speak in English!",
            "You showed courage by practicing your speaking skills.",
        ],
        grammar_notes=["Keep practicing to improve your sentence structure."],
        encouragement="Every practice session makes you better. Keep up the great work!",
    )


__all__ = ["FeedbackContext", "FeedbackService", "fallback_feedback"]
