"""Dummy feedback generator for offline usage."""

from __future__ import annotations

from ...data.models import FeedbackResult
from .base import FeedbackContext, FeedbackService, fallback_feedback


class DummyFeedbackService(FeedbackService):
    def generate_feedback(self, context: FeedbackContext) -> FeedbackResult:
        feedback = fallback_feedback(context.wpm)
        return feedback.model_copy(
            update={
                "cefr_explanation": (
                    f"Offline estimate from {context.word_count} words at {context.wpm} WPM."
                )
            }
        )


__all__ = ["DummyFeedbackService"]
