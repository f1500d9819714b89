"""Dummy transcription service for testing or offline usage."""

from __future__ import annotations

from .base import TranscriptionService

DEFAULT_TEXT = (
    "I would like to talk about {topic}. It is something I think about a lot "
    "and I enjoy sharing it with my friends."
)


class DummyTranscriptionService(TranscriptionService):
    def __init__(self, text: str = DEFAULT_TEXT) -> None:
        self.text = text

    def transcribe(self, audio: bytes, mime_type: str, *, topic: str) -> str:
        return self.text.replace("{topic}", topic.lower())


__all__ = ["DummyTranscriptionService"]
