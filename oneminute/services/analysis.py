"""Analysis client: transcript, score and feedback for one recording."""

from __future__ import annotations

from typing import Optional

from ..core.scoring import score_transcript
from ..data.models import AnalysisRequest, AnalysisResponse
from ..logging import get_logger
from .errors import AnalysisFailed
from .feedback.base import FeedbackContext, FeedbackService, fallback_feedback
from .transcription.base import TranscriptionService

LOGGER = get_logger(__name__)


class AnalysisClient:
    """Turns an :class:`AnalysisRequest` into an :class:`AnalysisResponse`.

    Audio is transcribed first; a request that already carries transcript text
    skips that step. Feedback problems never fail the analysis: the speed based
    fallback is used instead, so the transcript and WPM can always be saved.
    Transcription problems raise :class:`AnalysisFailed`.
    """

    def __init__(
        self,
        feedback: FeedbackService,
        transcription: Optional[TranscriptionService] = None,
    ) -> None:
        self.feedback = feedback
        self.transcription = transcription

    def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        if request.audio_payload is not None:
            if self.transcription is None:
                raise AnalysisFailed("Audio was recorded but no transcription backend is configured")
            transcript = self.transcription.transcribe(
                request.audio_payload, request.mime_type, topic=request.topic
            )
        else:
            transcript = request.transcript_text or ""
        transcript = transcript.strip()

        score = score_transcript(transcript, request.duration_seconds)
        context = FeedbackContext(
            transcript=transcript,
            topic=request.topic,
            word_count=score.word_count,
            wpm=score.wpm,
            duration_seconds=request.duration_seconds,
        )
        try:
            feedback = self.feedback.generate_feedback(context)
        except Exception:
            LOGGER.exception("Feedback generation failed; using fallback feedback")
            feedback = fallback_feedback(score.wpm)

        LOGGER.info(
            "Analysis complete: %s words, %s WPM, level %s",
            score.word_count,
            score.wpm,
            feedback.cefr_level.value,
        )
        return AnalysisResponse(
            transcribed_text=transcript,
            word_count=score.word_count,
            wpm=score.wpm,
            duration_seconds=request.duration_seconds,
            cefr_level=feedback.cefr_level,
            cefr_explanation=feedback.cefr_explanation,
            good_points=feedback.good_points,
            grammar_notes=feedback.grammar_notes,
            encouragement=feedback.encouragement,
            topic=request.topic,
        )


__all__ = ["AnalysisClient"]
