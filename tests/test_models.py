from __future__ import annotations

import base64

import pytest
from pydantic import ValidationError

from oneminute.data.models import AnalysisRequest, AnalysisResponse, CaptureOutput, CEFRLevel


def test_request_requires_exactly_one_source():
    with pytest.raises(ValidationError):
        AnalysisRequest(mime_type="audio/wav", topic="t", duration_seconds=12)
    with pytest.raises(ValidationError):
        AnalysisRequest(
            audio_payload=b"x", transcript_text="hi", mime_type="audio/wav", topic="t", duration_seconds=12
        )


def test_audio_request_wire_format():
    request = AnalysisRequest.from_capture(
        CaptureOutput(mime_type="audio/webm;codecs=opus", audio=b"\x00\x01"),
        topic="Your hometown",
        duration_seconds=15,
    )

    assert request.to_wire() == {
        "audioBase64": base64.b64encode(b"\x00\x01").decode("ascii"),
        "mimeType": "audio/webm;codecs=opus",
        "topic": "Your hometown",
        "durationSeconds": 15,
    }


def test_transcript_request_wire_format_keeps_empty_text():
    request = AnalysisRequest.from_capture(
        CaptureOutput(mime_type="text/plain", transcript=""), topic="Free Talk", duration_seconds=11
    )

    wire = request.to_wire()
    assert wire["transcriptText"] == ""
    assert "audioBase64" not in wire


def test_response_accepts_camel_case_payload():
    response = AnalysisResponse.model_validate(
        {
            "transcribedText": "hello there",
            "wordCount": 2,
            "wpm": 12,
            "durationSeconds": 10,
            "cefrLevel": "A1",
            "cefrExplanation": "Very short.",
            "goodPoints": ["Nice greeting"],
            "grammarNotes": [],
            "encouragement": "Well done!",
            "topic": "Free Talk",
        }
    )

    assert response.cefr_level is CEFRLevel.A1
    assert response.feedback.good_points == ["Nice greeting"]
    assert response.to_json()["transcribedText"] == "hello there"
