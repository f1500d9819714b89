"""Live speech recognition capture built on sounddevice and SpeechRecognition."""

from __future__ import annotations

import abc
import asyncio
import contextlib
import queue
import threading
import time
from typing import Any, Callable, List, Optional

import numpy as np

from ...config import Settings, get_settings
from ...data.models import CaptureOutput
from ...logging import get_logger
from .base import CaptureBackend, CaptureError, DeviceUnavailable, PermissionDenied
from .native import load_sounddevice
from .writers import float_to_pcm16

LOGGER = get_logger(__name__)

# Extra time after the maximum recording length during which a dropped
# microphone stream is still reopened.
RESTART_GRACE_SECONDS = 5.0


def load_speech_recognition():
    try:
        import speech_recognition as sr
    except ImportError as exc:
        raise DeviceUnavailable("The SpeechRecognition package is required for live transcription") from exc
    return sr


class PhraseSource(abc.ABC):
    """Supplies consecutive phrases of 16-bit mono PCM audio."""

    sample_rate: int

    @property
    @abc.abstractmethod
    def active(self) -> bool:
        """``False`` once the underlying stream has ended."""

    @abc.abstractmethod
    def read_phrase(self, timeout: float) -> Optional[bytes]:
        """Return a complete phrase, or ``None`` if none is ready yet."""

    @abc.abstractmethod
    def drain(self) -> Optional[bytes]:
        """Return whatever audio is buffered, even if shorter than a phrase."""

    @abc.abstractmethod
    def close(self) -> None:
        """Stop the stream."""


class MicrophonePhraseSource(PhraseSource):
    """Cuts a sounddevice input stream into fixed length phrases."""

    def __init__(
        self,
        sd_module: Any,
        *,
        sample_rate: int,
        phrase_seconds: float,
        device: Optional[int | str] = None,
        block_size: int = 1024,
    ) -> None:
        self.sample_rate = sample_rate
        self._queue: "queue.Queue[np.ndarray]" = queue.Queue()
        self._finished = threading.Event()
        self._buffer: List[np.ndarray] = []
        self._buffered_frames = 0
        self._phrase_frames = max(int(sample_rate * phrase_seconds), 1)
        self._stream = sd_module.InputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            blocksize=block_size,
            device=device,
            callback=self._callback,
            finished_callback=self._finished.set,
        )
        self._stream.start()

    def _callback(self, indata, frames, time_info, status) -> None:  # pragma: no cover - runtime audio thread
        if status:
            LOGGER.warning("sounddevice status: %s", status)
        self._queue.put(indata.copy())

    @property
    def active(self) -> bool:
        return not self._finished.is_set()

    def _pull(self, timeout: float) -> None:
        try:
            chunk = self._queue.get(timeout=timeout) if timeout > 0 else self._queue.get_nowait()
        except queue.Empty:
            return
        while True:
            self._buffer.append(chunk)
            self._buffered_frames += chunk.shape[0]
            try:
                chunk = self._queue.get_nowait()
            except queue.Empty:
                return

    def _take(self) -> Optional[bytes]:
        if not self._buffer:
            return None
        pcm = float_to_pcm16(np.concatenate(self._buffer))
        self._buffer.clear()
        self._buffered_frames = 0
        return pcm

    def read_phrase(self, timeout: float) -> Optional[bytes]:
        self._pull(timeout)
        if self._buffered_frames >= self._phrase_frames:
            return self._take()
        return None

    def drain(self) -> Optional[bytes]:
        self._pull(0)
        return self._take()

    def close(self) -> None:
        with contextlib.suppress(Exception):
            self._stream.stop()
        with contextlib.suppress(Exception):
            self._stream.close()
        self._finished.set()


class SpeechRecognitionCapture(CaptureBackend):
    """Produces transcript text instead of audio.

    Phrases from the microphone go through a recognizer on a worker thread.
    "No speech" answers are skipped; any other recognizer error ends listening
    and is reported by ``stop()``. If the microphone stream ends on its own
    while listening is still wanted, a new stream is opened and the transcript
    carries on, until the session deadline passes.
    """

    name = "speech"

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        recognizer: Optional[Callable[[Any], str]] = None,
        source_factory: Optional[Callable[[], PhraseSource]] = None,
        device: Optional[int | str] = None,
        recognition_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self._settings = settings or get_settings()
        self._on_progress = on_progress
        self._recognizer = recognizer
        self._source_factory = source_factory
        self._device = device
        self._recognition_timeout = recognition_timeout
        self._clock = clock
        self._sr: Any = None
        self._source: Optional[PhraseSource] = None
        self._worker: Optional[threading.Thread] = None
        self._listening = threading.Event()
        self._lock = threading.Lock()
        self._parts: List[str] = []
        self._error: Optional[str] = None
        self._deadline = 0.0
        self.restarts = 0

    def set_progress_callback(self, callback: Optional[Callable[[str], None]]) -> None:
        self._on_progress = callback

    @property
    def failure(self) -> Optional[str]:
        return self._error

    @property
    def transcript(self) -> str:
        with self._lock:
            return " ".join(self._parts).strip()

    async def _prepare(self) -> None:
        await asyncio.to_thread(self._load)

    def _load(self) -> None:
        self._sr = load_speech_recognition()
        if self._recognizer is None:
            recognizer = self._sr.Recognizer()
            language = self._settings.speech_language

            def _recognize_google(audio):
                return recognizer.recognize_google(audio, language=language)

            self._recognizer = _recognize_google
        if self._source_factory is None:
            sd = load_sounddevice()
            try:
                sd.query_devices(self._device, kind="input")
            except ValueError as exc:
                raise DeviceUnavailable(f"No usable input device: {exc}") from exc
            except sd.PortAudioError as exc:
                raise PermissionDenied(f"Microphone access was refused: {exc}") from exc

            def _open_microphone() -> PhraseSource:
                return MicrophonePhraseSource(
                    sd,
                    sample_rate=self._settings.sample_rate,
                    phrase_seconds=self._settings.speech_phrase_seconds,
                    device=self._device,
                )

            self._source_factory = _open_microphone

    async def _start(self) -> None:
        await asyncio.to_thread(self._begin)

    def _begin(self) -> None:
        assert self._source_factory is not None
        try:
            self._source = self._source_factory()
        except CaptureError:
            raise
        except Exception as exc:
            raise DeviceUnavailable(f"Failed to open the microphone: {exc}") from exc
        with self._lock:
            self._parts.clear()
        self._error = None
        self._deadline = (
            self._clock() + self._settings.max_duration_seconds + RESTART_GRACE_SECONDS
        )
        self._listening.set()
        self._worker = threading.Thread(target=self._listen_loop, daemon=True)
        self._worker.start()
        LOGGER.info("Speech recognition started (%s)", self._settings.speech_language)

    def _listen_loop(self) -> None:
        source = self._source
        assert source is not None
        while self._listening.is_set():
            phrase = source.read_phrase(timeout=0.1)
            if phrase:
                self._recognize(phrase, source.sample_rate)
            if source.active or not self._listening.is_set():
                continue

            tail = source.drain()
            if tail:
                self._recognize(tail, source.sample_rate)
            source.close()
            if self._clock() >= self._deadline:
                LOGGER.warning("Microphone stream ended after the session deadline; not restarting")
                self._listening.clear()
                return
            self.restarts += 1
            LOGGER.info("Microphone stream ended unexpectedly; restarting (restart %s)", self.restarts)
            try:
                source = self._source_factory()
            except Exception as exc:
                self._fail(f"restart failed: {exc}")
                return
            self._source = source

        tail = source.drain()
        if tail and self._error is None:
            self._recognize(tail, source.sample_rate)
        source.close()

    def _recognize(self, pcm: bytes, sample_rate: int) -> None:
        if self._error is not None:
            return
        sr = self._sr
        audio = sr.AudioData(pcm, sample_rate, 2)
        try:
            text = self._recognizer(audio)
        except sr.UnknownValueError:
            LOGGER.debug("No speech detected in phrase")
            return
        except sr.RequestError as exc:
            self._fail(f"network: {exc}")
            return
        except Exception as exc:
            self._fail(str(exc) or exc.__class__.__name__)
            return

        text = (text or "").strip()
        if not text:
            return
        with self._lock:
            self._parts.append(text)
            snapshot = " ".join(self._parts)
        callback = self._on_progress
        if callback is not None:
            try:
                callback(snapshot)
            except Exception:
                LOGGER.exception("Transcript progress callback raised an exception")

    def _fail(self, reason: str) -> None:
        LOGGER.error("Speech recognition error: %s", reason)
        self._error = reason
        self._listening.clear()

    async def _stop(self) -> CaptureOutput:
        transcript = await asyncio.to_thread(self._finish)
        return CaptureOutput(mime_type="text/plain", transcript=transcript)

    def _finish(self) -> str:
        self._listening.clear()
        if self._worker is not None:
            self._worker.join(timeout=max(self._settings.stop_flush_seconds, 0.1) + self._recognition_timeout)
            if self._worker.is_alive():
                LOGGER.warning("Speech recognition did not finish in time; using the transcript so far")
            self._worker = None
        if self._error is not None:
            raise CaptureError(f"Speech recognition error: {self._error}")
        transcript = self.transcript
        LOGGER.info("Speech recognition stopped with %s words", len(transcript.split()))
        return transcript

    def _release(self) -> None:
        self._listening.clear()
        source, self._source = self._source, None
        if source is not None:
            source.close()
        worker, self._worker = self._worker, None
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=1)
        with self._lock:
            self._parts.clear()
        self._on_progress = None


__all__ = [
    "MicrophonePhraseSource",
    "PhraseSource",
    "SpeechRecognitionCapture",
    "load_speech_recognition",
]
