"""OpenAI powered transcription service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ...config import get_settings
from ...logging import get_logger
from ..errors import AnalysisBadRequest, AnalysisFailed
from .base import TranscriptionService, extension_for_mime

LOGGER = get_logger(__name__)

TRANSCRIPTION_PROMPT = (
    "The speaker is a university student practicing English speaking about the topic: {topic}"
)


class OpenAITranscriptionService(TranscriptionService):
    def __init__(self, model: Optional[str] = None, language: str = "en") -> None:
        settings = get_settings()
        self.model = model or settings.openai_transcription_model
        self.language = language
        try:
            from openai import BadRequestError, OpenAI, OpenAIError  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime dependency guard
            raise RuntimeError("openai package is required for OpenAITranscriptionService") from exc
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
            raise RuntimeError(f"Failed to initialise OpenAI transcription client: {message}") from exc
        self._openai_error_cls = OpenAIError
        self._bad_request_cls = BadRequestError

    def transcribe(self, audio: bytes, mime_type: str, *, topic: str) -> str:
        if not audio:
            raise AnalysisBadRequest("No audio was recorded")

        filename = f"speech.{extension_for_mime(mime_type)}"
        base_mime = mime_type.split(";", 1)[0]
        LOGGER.info("Requesting OpenAI transcription for %s bytes of %s", len(audio), mime_type)

        response: Any = None
        formats = self._candidate_response_formats()
        for index, response_format in enumerate(formats):
            try:
                response = self.client.audio.transcriptions.create(
                    model=self.model,
                    file=(filename, audio, base_mime),
                    language=self.language,
                    prompt=TRANSCRIPTION_PROMPT.format(topic=topic),
                    response_format=response_format,
                )
                break
            except self._openai_error_cls as exc:
                if self._is_response_format_error(exc) and index < len(formats) - 1:
                    LOGGER.info(
                        "Response format '%s' is not supported by model '%s'; retrying with '%s'",
                        response_format,
                        self.model,
                        formats[index + 1],
                    )
                    continue
                if isinstance(exc, self._bad_request_cls):
                    raise AnalysisBadRequest(f"Transcription rejected the audio: {exc}") from exc
                raise AnalysisFailed(f"Transcription failed: {exc}") from exc

        return self._parse_transcription_response(response).strip()

    def _candidate_response_formats(self) -> List[str]:
        return ["json", "text"]

    def _is_response_format_error(self, exc: Exception) -> bool:
        message = str(getattr(exc, "message", None) or exc)
        return "response_format" in message and "unsupported" in message.lower()

    def _parse_transcription_response(self, response: Any) -> str:
        if response is None:
            return ""
        if isinstance(response, str):
            return response

        data: Optional[Dict[str, Any]] = None
        if isinstance(response, dict):
            data = response
        elif hasattr(response, "model_dump"):
            try:
                data = response.model_dump()
            except Exception:  # pragma: no cover - defensive
                data = None

        if data is not None:
            return str(data.get("text", "") or "")
        return str(getattr(response, "text", "") or "")


__all__ = ["OpenAITranscriptionService"]
