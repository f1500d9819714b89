from __future__ import annotations

import pytest

from oneminute.data.models import AnalysisRequest, CEFRLevel, FeedbackResult
from oneminute.services.analysis import AnalysisClient
from oneminute.services.errors import AnalysisFailed
from oneminute.services.factory import (
    ServiceConfigurationError,
    build_analysis_client,
    resolve_feedback_backend,
    resolve_transcription_backend,
)
from oneminute.services.feedback.base import FeedbackService
from oneminute.services.feedback.dummy import DummyFeedbackService
from oneminute.services.transcription.base import TranscriptionService
from oneminute.services.transcription.dummy import DummyTranscriptionService


class RecordingTranscription(TranscriptionService):
    def __init__(self, text: str = "  I enjoy cooking pasta with my family  ") -> None:
        self.text = text
        self.calls = []

    def transcribe(self, audio, mime_type, *, topic):
        self.calls.append((audio, mime_type, topic))
        return self.text


class FixedFeedback(FeedbackService):
    def __init__(self) -> None:
        self.contexts = []

    def generate_feedback(self, context):
        self.contexts.append(context)
        return FeedbackResult(
            cefr_level=CEFRLevel.B1,
            cefr_explanation="Good flow.",
            good_points=["Nice detail"],
            grammar_notes=[],
            encouragement="Great!",
        )


class BrokenFeedback(FeedbackService):
    def generate_feedback(self, context):
        raise ConnectionError("offline")


def _audio_request(duration: int = 12) -> AnalysisRequest:
    return AnalysisRequest(
        audio_payload=b"webm-bytes", mime_type="audio/webm;codecs=opus", topic="Food", duration_seconds=duration
    )


def test_audio_is_transcribed_and_scored():
    transcription = RecordingTranscription()
    feedback = FixedFeedback()
    client = AnalysisClient(feedback=feedback, transcription=transcription)

    response = client.analyze(_audio_request())

    assert transcription.calls == [(b"webm-bytes", "audio/webm;codecs=opus", "Food")]
    assert response.transcribed_text == "I enjoy cooking pasta with my family"
    assert response.word_count == 7
    assert response.wpm == 35
    assert response.cefr_level is CEFRLevel.B1
    assert response.topic == "Food"
    assert feedback.contexts[0].wpm == 35


def test_transcript_requests_skip_transcription():
    transcription = RecordingTranscription()
    client = AnalysisClient(feedback=FixedFeedback(), transcription=transcription)
    request = AnalysisRequest(
        transcript_text="hello world", mime_type="text/plain", topic="Free Talk", duration_seconds=10
    )

    response = client.analyze(request)

    assert transcription.calls == []
    assert response.word_count == 2
    assert response.wpm == 12


def test_audio_without_transcription_backend_fails():
    client = AnalysisClient(feedback=FixedFeedback(), transcription=None)

    with pytest.raises(AnalysisFailed):
        client.analyze(_audio_request())


def test_feedback_failure_uses_speed_fallback():
    client = AnalysisClient(feedback=BrokenFeedback(), transcription=RecordingTranscription())

    response = client.analyze(_audio_request())

    assert response.cefr_level is CEFRLevel.A1
    assert response.cefr_explanation == "Level estimated based on speaking speed."


def test_transcription_failure_propagates():
    class FailingTranscription(TranscriptionService):
        def transcribe(self, audio, mime_type, *, topic):
            raise AnalysisFailed("network down")

    client = AnalysisClient(feedback=FixedFeedback(), transcription=FailingTranscription())

    with pytest.raises(AnalysisFailed):
        client.analyze(_audio_request())


def test_factory_resolves_offline_backends():
    client = build_analysis_client("dummy", "dummy")

    assert isinstance(client.transcription, DummyTranscriptionService)
    assert isinstance(client.feedback, DummyFeedbackService)
    assert resolve_transcription_backend("none") is None
    assert isinstance(resolve_feedback_backend(" Dummy "), DummyFeedbackService)


@pytest.mark.parametrize("resolver", [resolve_transcription_backend, resolve_feedback_backend])
def test_factory_rejects_unknown_backends(resolver):
    with pytest.raises(ServiceConfigurationError):
        resolver("carrier-pigeon")
