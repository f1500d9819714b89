"""Data models used by oneminute."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CEFRLevel(str, Enum):
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"


class _CamelModel(BaseModel):
    """Base for models whose JSON form uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class FeedbackResult(_CamelModel):
    cefr_level: CEFRLevel
    cefr_explanation: str
    good_points: List[str] = Field(default_factory=list)
    grammar_notes: List[str] = Field(default_factory=list)
    encouragement: str


class AnalysisRequest(_CamelModel):
    """Captured speech plus the context sent to the analysis service."""

    audio_payload: Optional[bytes] = None
    transcript_text: Optional[str] = None
    mime_type: str
    topic: str
    duration_seconds: int

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "AnalysisRequest":
        if (self.audio_payload is None) == (self.transcript_text is None):
            raise ValueError("exactly one of audio_payload or transcript_text must be set")
        return self

    @classmethod
    def from_capture(
        cls, output: "CaptureOutput", *, topic: str, duration_seconds: int
    ) -> "AnalysisRequest":
        return cls(
            audio_payload=output.audio,
            transcript_text=output.transcript,
            mime_type=output.mime_type,
            topic=topic,
            duration_seconds=duration_seconds,
        )

    def to_wire(self) -> dict:
        """Return the request body understood by the remote analysis service."""

        body: dict = {
            "mimeType": self.mime_type,
            "topic": self.topic,
            "durationSeconds": self.duration_seconds,
        }
        if self.audio_payload is not None:
            body["audioBase64"] = base64.b64encode(self.audio_payload).decode("ascii")
        else:
            body["transcriptText"] = self.transcript_text
        return body


class AnalysisResponse(_CamelModel):
    transcribed_text: str
    word_count: int
    wpm: int
    duration_seconds: int
    cefr_level: CEFRLevel
    cefr_explanation: str
    good_points: List[str] = Field(default_factory=list)
    grammar_notes: List[str] = Field(default_factory=list)
    encouragement: str
    topic: str

    @property
    def feedback(self) -> FeedbackResult:
        return FeedbackResult(
            cefr_level=self.cefr_level,
            cefr_explanation=self.cefr_explanation,
            good_points=list(self.good_points),
            grammar_notes=list(self.grammar_notes),
            encouragement=self.encouragement,
        )


class SpeakingResult(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    topic: str
    transcribed_text: str
    word_count: int
    wpm: int
    duration_seconds: int
    cefr_level: CEFRLevel
    cefr_explanation: str
    good_points: List[str] = Field(default_factory=list)
    grammar_notes: List[str] = Field(default_factory=list)
    encouragement: str
    created_at: str


class SpeakingTopic(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    emoji: str


@dataclass
class CaptureOutput:
    """Data handed back by a capture backend when it stops."""

    mime_type: str
    audio: Optional[bytes] = None
    transcript: Optional[str] = None


__all__ = [
    "AnalysisRequest",
    "AnalysisResponse",
    "CEFRLevel",
    "CaptureOutput",
    "FeedbackResult",
    "SpeakingResult",
    "SpeakingTopic",
]
