"""Transcription service abstractions."""

from __future__ import annotations

import abc


class TranscriptionService(abc.ABC):
    """Convert recorded speech into text."""

    @abc.abstractmethod
    def transcribe(self, audio: bytes, mime_type: str, *, topic: str) -> str:
        raise NotImplementedError


def extension_for_mime(mime_type: str) -> str:
    mime = mime_type.lower()
    if "webm" in mime:
        return "webm"
    if "mp4" in mime:
        return "m4a"
    if "ogg" in mime:
        return "ogg"
    return "wav"


__all__ = ["TranscriptionService", "extension_for_mime"]
