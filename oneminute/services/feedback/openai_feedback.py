"""OpenAI-powered speaking feedback."""

from __future__ import annotations

from typing import Optional

from ...config import get_settings
from ...data.models import FeedbackResult
from ...logging import get_logger
from .base import FeedbackContext, FeedbackService, fallback_feedback
from .prompt import SYSTEM_PROMPT, build_user_prompt, feedback_or_fallback

LOGGER = get_logger(__name__)


class OpenAIFeedbackService(FeedbackService):
    def __init__(self, model: Optional[str] = None) -> None:
        settings = get_settings()
        self.model = model or settings.openai_feedback_model
        try:
            from openai import OpenAI, OpenAIError  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime dependency guard
            raise RuntimeError("openai package is required for OpenAIFeedbackService") from exc
        client_kwargs = {}
        if settings.openai_api_key:
            client_kwargs["api_key"] = settings.openai_api_key

        try:
            self.client = OpenAI(**client_kwargs)
        except OpenAIError as exc:
            message = str(exc)
            if "api_key" in message.lower():
                raise RuntimeError(
                    "OpenAI API key not configured. Set the OPENAI_API_KEY environment variable "
                    "or run 'oneminute set openai_api_key <key>'."
                ) from exc
            raise RuntimeError(f"Failed to initialise OpenAI feedback client: {message}") from exc
        self._openai_error_cls = OpenAIError

    def generate_feedback(self, context: FeedbackContext) -> FeedbackResult:
        LOGGER.info("Requesting OpenAI feedback for %s words on %r", context.word_count, context.topic)
        try:
            response = self.client.responses.create(
                model=self.model,
                input=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(context)},
                ],
                text={"format": {"type": "json_object"}},
            )
        except self._openai_error_cls as exc:
            LOGGER.warning("Feedback request failed; using fallback feedback: %s", exc)
            return fallback_feedback(context.wpm)
        return feedback_or_fallback(response.output_text, context.wpm)


__all__ = ["OpenAIFeedbackService"]
