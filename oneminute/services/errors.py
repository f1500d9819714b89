"""Errors raised by the analysis services."""

from __future__ import annotations


class AnalysisFailed(RuntimeError):
    """Raised when the transcription or analysis service cannot be reached or fails."""


class AnalysisBadRequest(AnalysisFailed):
    """Raised when the service rejects the submitted audio, e.g. unintelligible speech."""


class MalformedFeedback(ValueError):
    """Raised when language model feedback cannot be parsed; always recovered locally."""


__all__ = ["AnalysisBadRequest", "AnalysisFailed", "MalformedFeedback"]
