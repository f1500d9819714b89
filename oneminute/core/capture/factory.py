"""Selection of the capture backend used by a session."""

from __future__ import annotations

import importlib.util
from typing import Optional

from ...config import Settings, get_settings
from ...logging import get_logger
from .base import CaptureBackend

LOGGER = get_logger(__name__)

CAPTURE_BACKENDS = ("native", "recorder", "speech")


class CaptureConfigurationError(RuntimeError):
    """Raised when an unknown capture backend is requested."""


def _module_available(name: str) -> bool:
    return importlib.util.find_spec(name) is not None


def detect_capture_backend(settings: Optional[Settings] = None) -> str:
    """Pick a backend from what this machine offers."""

    settings = settings or get_settings()
    if _module_available("sounddevice"):
        return "native"

    from .recorder import _resolve_binary

    if _resolve_binary(settings.ffmpeg_binary) is not None:
        return "recorder"

    LOGGER.info("Neither sounddevice nor FFmpeg is available; native capture will report it")
    return "native"


def create_capture_backend(name: Optional[str] = None, settings: Optional[Settings] = None) -> CaptureBackend:
    """Create the capture backend for one session.

    ``name`` is one of ``native``, ``recorder``, ``speech`` or ``auto``; when it
    is omitted the ``capture_backend`` setting decides.
    """

    settings = settings or get_settings()
    backend = (name or settings.capture_backend or "auto").strip().lower()
    if backend == "auto":
        backend = detect_capture_backend(settings)
        LOGGER.info("Detected %s capture backend", backend)

    if backend == "native":
        from .native import NativeCapture

        return NativeCapture(settings=settings)
    if backend == "recorder":
        from .recorder import StreamRecorderCapture

        return StreamRecorderCapture(settings=settings)
    if backend == "speech":
        from .speech import SpeechRecognitionCapture

        return SpeechRecognitionCapture(settings=settings)

    raise CaptureConfigurationError(
        f"Unknown capture backend: {backend} (expected auto, {', '.join(CAPTURE_BACKENDS)})"
    )


__all__ = [
    "CAPTURE_BACKENDS",
    "CaptureConfigurationError",
    "create_capture_backend",
    "detect_capture_backend",
]
