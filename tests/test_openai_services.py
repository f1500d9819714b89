from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from oneminute.data.models import CEFRLevel
from oneminute.services.errors import AnalysisBadRequest, AnalysisFailed
from oneminute.services.feedback.base import FeedbackContext
from oneminute.services.feedback.openai_feedback import OpenAIFeedbackService
from oneminute.services.transcription.openai_client import OpenAITranscriptionService


class DummyOpenAIError(Exception):
    """Fake error raised by the mocked OpenAI client."""


class DummyBadRequestError(DummyOpenAIError):
    """Fake 400 response."""


def _make_transcription_service(create) -> OpenAITranscriptionService:
    service = object.__new__(OpenAITranscriptionService)
    service.model = "test-model"
    service.language = "en"
    service._openai_error_cls = DummyOpenAIError
    service._bad_request_cls = DummyBadRequestError
    service.client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
    return service


def test_transcribe_falls_back_to_text():
    calls = []

    def create(model, file, language, prompt, response_format):
        calls.append((file, response_format))
        if response_format != "text":
            raise DummyOpenAIError(f"response_format '{response_format}' unsupported")
        return "  Mock transcript from text response \n"

    service = _make_transcription_service(create)

    result = service.transcribe(b"opus", "audio/webm;codecs=opus", topic="Your hometown")

    assert [fmt for _, fmt in calls] == ["json", "text"]
    assert calls[0][0] == ("speech.webm", b"opus", "audio/webm")
    assert result == "Mock transcript from text response"


def test_transcribe_reads_text_attribute():
    service = _make_transcription_service(lambda **kwargs: SimpleNamespace(text="hello"))

    assert service.transcribe(b"wav", "audio/wav", topic="t") == "hello"


def test_transcribe_rejects_empty_audio():
    service = _make_transcription_service(lambda **kwargs: pytest.fail("should not be called"))

    with pytest.raises(AnalysisBadRequest):
        service.transcribe(b"", "audio/wav", topic="t")


def test_transcribe_maps_client_errors():
    def bad_request(**kwargs):
        raise DummyBadRequestError("Invalid file format")

    def network(**kwargs):
        raise DummyOpenAIError("Connection error")

    with pytest.raises(AnalysisBadRequest):
        _make_transcription_service(bad_request).transcribe(b"x", "audio/mp4", topic="t")
    with pytest.raises(AnalysisFailed) as excinfo:
        _make_transcription_service(network).transcribe(b"x", "audio/mp4", topic="t")
    assert not isinstance(excinfo.value, AnalysisBadRequest)


def _make_feedback_service(create) -> OpenAIFeedbackService:
    service = object.__new__(OpenAIFeedbackService)
    service.model = "test-model"
    service._openai_error_cls = DummyOpenAIError
    service.client = SimpleNamespace(responses=SimpleNamespace(create=create))
    return service


CONTEXT = FeedbackContext(transcript="I like tea", topic="Food", word_count=3, wpm=18, duration_seconds=10)


def test_feedback_parses_model_answer():
    answer = {
        "cefrLevel": "A2",
        "cefrExplanation": "Simple sentences.",
        "goodPoints": ["Clear", "Relevant"],
        "grammarNotes": ["Say 'I like tea very much'."],
        "encouragement": "Keep it up!",
    }
    requests = []

    def create(**kwargs):
        requests.append(kwargs)
        return SimpleNamespace(output_text=json.dumps(answer))

    feedback = _make_feedback_service(create).generate_feedback(CONTEXT)

    assert feedback.cefr_level is CEFRLevel.A2
    assert requests[0]["text"] == {"format": {"type": "json_object"}}
    assert requests[0]["input"][0]["role"] == "system"


def test_feedback_falls_back_on_garbage_and_errors():
    garbage = _make_feedback_service(lambda **kwargs: SimpleNamespace(output_text="I think B1?"))

    def offline(**kwargs):
        raise DummyOpenAIError("timeout")

    assert garbage.generate_feedback(CONTEXT).cefr_level is CEFRLevel.A1
    assert _make_feedback_service(offline).generate_feedback(CONTEXT).cefr_explanation == (
        "Level estimated based on speaking speed."
    )
