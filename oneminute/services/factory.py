"""Factories for runtime service selection."""

from __future__ import annotations

from typing import Optional

from .analysis import AnalysisClient
from .feedback.base import FeedbackService
from .feedback.dummy import DummyFeedbackService
from .transcription.base import TranscriptionService
from .transcription.dummy import DummyTranscriptionService


class ServiceConfigurationError(ValueError):
    """Raised when an unknown backend is requested."""


def _normalise(name: Optional[str]) -> str:
    if not name:
        return "none"
    return name.strip().lower()


def resolve_transcription_backend(name: Optional[str]) -> Optional[TranscriptionService]:
    backend = _normalise(name)
    if backend in {"", "none", "off"}:
        return None
    if backend == "dummy":
        return DummyTranscriptionService()
    if backend == "openai":
        from .transcription.openai_client import OpenAITranscriptionService

        return OpenAITranscriptionService()
    raise ServiceConfigurationError(f"Unknown transcription backend: {name}")


def resolve_feedback_backend(name: Optional[str]) -> FeedbackService:
    backend = _normalise(name)
    if backend == "dummy":
        return DummyFeedbackService()
    if backend == "openai":
        from .feedback.openai_feedback import OpenAIFeedbackService

        return OpenAIFeedbackService()
    raise ServiceConfigurationError(f"Unknown feedback backend: {name}")


def build_analysis_client(
    transcription_backend: Optional[str], feedback_backend: Optional[str]
) -> AnalysisClient:
    return AnalysisClient(
        feedback=resolve_feedback_backend(feedback_backend),
        transcription=resolve_transcription_backend(transcription_backend),
    )


__all__ = [
    "ServiceConfigurationError",
    "build_analysis_client",
    "resolve_feedback_backend",
    "resolve_transcription_backend",
]
