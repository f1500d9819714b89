"""Instruction template for language model feedback and parsing of its answer."""

from __future__ import annotations

import json
import re

from pydantic import ValidationError

from ...data.models import FeedbackResult
from ...logging import get_logger
from ..errors import MalformedFeedback
from .base import FeedbackContext, fallback_feedback

LOGGER = get_logger(__name__)

SYSTEM_PROMPT = """You are a friendly and encouraging English teacher for university freshmen (beginner level, CEFR A1-B1 range).

Your task is to analyze a student's 1-minute English speaking practice and provide feedback.

You MUST respond in valid JSON format with this exact structure:
{
  "cefrLevel": "A1" or "A2" or "B1" or "B2" or "C1" or "C2",
  "cefrExplanation": "Brief explanation of why this CEFR level (1 sentence, in English)",
  "goodPoints": ["Point 1 about expression or content (in English)", "Point 2 (in English)"],
  "grammarNotes": ["Grammar note 1 (in English)", "Grammar note 2 (in English, optional)"],
  "encouragement": "A warm closing message with praise and encouragement (in English)"
}

Guidelines for CEFR assessment:
- A1 (Beginner): Very basic phrases, limited vocabulary, many pauses. WPM typically under 50.
- A2 (Elementary): Simple sentences, basic vocabulary, some hesitation. WPM typically 50-80.
- B1 (Intermediate): Connected sentences, reasonable fluency, some errors. WPM typically 80-120.
- B2 (Upper Intermediate): Clear, detailed speech with good fluency. WPM typically 120-150.
- C1/C2: Advanced fluency with complex structures. WPM typically 150+.

Guidelines for feedback:
- goodPoints: Always find 2 positive things to say about their expression, vocabulary choice, or content. Be specific and genuine.
- grammarNotes: Point out 1-2 grammar issues gently. Show the correction. Keep it simple and educational.
- encouragement: Be warm, supportive, and motivating. Acknowledge their effort.

Important: Even if the speech is very short or has many errors, always be encouraging and find something positive to say."""

REQUIRED_FIELDS = ("cefrLevel", "cefrExplanation", "goodPoints", "grammarNotes", "encouragement")

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def build_user_prompt(context: FeedbackContext) -> str:
    return (
        f'Topic: "{context.topic}"\n'
        f"Speaking duration: {context.duration_seconds} seconds\n"
        f"Word count: {context.word_count}\n"
        f"Words per minute: {context.wpm}\n"
        "\n"
        "Transcribed speech:\n"
        f'"{context.transcript}"\n'
        "\n"
        "Please analyze this speech and provide feedback in the JSON format specified."
    )


def parse_feedback(raw: str) -> FeedbackResult:
    """Parse the model answer, raising :class:`MalformedFeedback` when unusable."""

    text = (raw or "").strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedFeedback(f"Feedback is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedFeedback("Feedback JSON is not an object")

    missing = [key for key in REQUIRED_FIELDS if key not in data]
    if missing:
        raise MalformedFeedback(f"Feedback is missing fields: {', '.join(missing)}")
    if isinstance(data["cefrLevel"], str):
        data["cefrLevel"] = data["cefrLevel"].strip().upper()
    try:
        return FeedbackResult.model_validate(data)
    except ValidationError as exc:
        raise MalformedFeedback(f"Feedback has invalid fields: {exc}") from exc


def feedback_or_fallback(raw: str, wpm: int) -> FeedbackResult:
    try:
        return parse_feedback(raw)
    except MalformedFeedback as exc:
        LOGGER.warning("Using fallback feedback: %s", exc)
        return fallback_feedback(wpm)


__all__ = [
    "REQUIRED_FIELDS",
    "SYSTEM_PROMPT",
    "build_user_prompt",
    "feedback_or_fallback",
    "parse_feedback",
]
