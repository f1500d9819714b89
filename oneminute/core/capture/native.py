"""Native microphone capture powered by sounddevice/PortAudio."""

from __future__ import annotations

import asyncio
import contextlib
import queue
import threading
import uuid
from pathlib import Path
from typing import Any, List, Optional

import numpy as np

from ...config import Settings, get_settings
from ...data.models import CaptureOutput
from ...logging import get_logger
from .base import CaptureBackend, DeviceUnavailable, PermissionDenied
from .writers import AudioFileWriter

LOGGER = get_logger(__name__)

_COMMON_SAMPLE_RATES = (48_000, 44_100, 32_000, 22_050, 16_000)


def load_sounddevice():
    """Import sounddevice, mapping a missing module or PortAudio to ``DeviceUnavailable``."""

    try:
        import sounddevice as sd
    except (ImportError, OSError) as exc:
        raise DeviceUnavailable("sounddevice and PortAudio are required for microphone capture") from exc
    return sd


class NativeCapture(CaptureBackend):
    """Records the default (or configured) input device into a WAV file."""

    name = "native"

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        device: Optional[int | str] = None,
        block_size: int = 1024,
        sd_module: Any = None,
    ) -> None:
        super().__init__()
        self._settings = settings or get_settings()
        self._device = device
        self._block_size = block_size
        self._sd = sd_module
        self.sample_rate = int(self._settings.sample_rate)
        self.channels = int(self._settings.channels)
        self._device_info: Optional[dict] = None
        self._stream = None
        self._writer: Optional[AudioFileWriter] = None
        self._path: Optional[Path] = None
        self._queue: "queue.Queue[np.ndarray]" = queue.Queue()
        self._writer_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _module(self):
        if self._sd is None:
            self._sd = load_sounddevice()
        return self._sd

    async def request_permission(self) -> None:
        await asyncio.to_thread(self._query_input_device)

    def _query_input_device(self) -> dict:
        sd = self._module()
        try:
            info = sd.query_devices(self._device, kind="input")
        except ValueError as exc:
            raise DeviceUnavailable(f"No usable input device: {exc}") from exc
        except sd.PortAudioError as exc:
            raise PermissionDenied(f"Microphone access was refused: {exc}") from exc
        if int(info.get("max_input_channels") or 0) <= 0:
            raise DeviceUnavailable(f"Device {info.get('name', self._device)} has no input channels")
        self._device_info = dict(info)
        LOGGER.info("Using input device %s", info.get("name", self._device))
        return self._device_info

    async def _prepare(self) -> None:
        await asyncio.to_thread(self._open_stream)

    def _sample_rate_candidates(self) -> List[int]:
        candidates: List[int] = []
        if self.sample_rate > 0:
            candidates.append(self.sample_rate)
        default_rate = (self._device_info or {}).get("default_samplerate")
        try:
            if default_rate:
                candidates.append(int(float(default_rate)))
        except (TypeError, ValueError):
            LOGGER.debug("Ignoring unparsable default sample rate %r", default_rate)
        candidates.extend(_COMMON_SAMPLE_RATES)
        return list(dict.fromkeys(rate for rate in candidates if rate > 0))

    def _open_stream(self) -> None:
        sd = self._module()
        if self._device_info is None:
            self._query_input_device()

        last_error: Optional[Exception] = None
        for sample_rate in self._sample_rate_candidates():
            try:
                stream = sd.InputStream(
                    samplerate=sample_rate,
                    channels=self.channels,
                    dtype="float32",
                    blocksize=self._block_size,
                    device=self._device,
                    callback=self._callback,
                )
            except sd.PortAudioError as exc:
                last_error = exc
                if "sample rate" in str(exc).lower():
                    LOGGER.warning("Input device rejected %s Hz: %s", sample_rate, exc)
                    continue
                raise DeviceUnavailable(f"Failed to open input stream: {exc}") from exc

            if sample_rate != self.sample_rate:
                LOGGER.warning("Adjusted sample rate from %s Hz to %s Hz", self.sample_rate, sample_rate)
            self.sample_rate = sample_rate
            self._stream = stream
            self._path = self._settings.recordings_path / f"native-{uuid.uuid4().hex[:8]}.wav"
            return

        message = "No compatible sample rate for the input device"
        if last_error is not None:
            message = f"{message} ({last_error})"
        raise DeviceUnavailable(message)

    def _callback(self, indata, frames, time_info, status) -> None:  # pragma: no cover - runtime audio thread
        if status:
            LOGGER.warning("sounddevice status: %s", status)
        self._queue.put(indata.copy())

    def _drain(self) -> None:
        while not self._stop_event.is_set() or not self._queue.empty():
            try:
                chunk = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            if self._writer is not None and not self._writer.closed:
                self._writer.write(np.asarray(chunk, dtype=np.float32))

    async def _start(self) -> None:
        await asyncio.to_thread(self._start_stream)

    def _start_stream(self) -> None:
        assert self._stream is not None and self._path is not None
        self._writer = AudioFileWriter(self._path, self.sample_rate)
        self._stop_event.clear()
        self._writer_thread = threading.Thread(target=self._drain, daemon=True)
        self._writer_thread.start()
        LOGGER.info("Starting native capture at %s Hz into %s", self.sample_rate, self._path)
        sd = self._module()
        try:
            self._stream.start()
        except sd.PortAudioError as exc:
            raise DeviceUnavailable(f"Failed to start input stream: {exc}") from exc

    async def _stop(self) -> CaptureOutput:
        audio = await asyncio.to_thread(self._finish)
        return CaptureOutput(mime_type="audio/wav", audio=audio)

    def _finish(self) -> bytes:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
        self._stop_event.set()
        if self._writer_thread is not None:
            self._writer_thread.join()
            self._writer_thread = None
        assert self._writer is not None and self._path is not None
        self._writer.close()
        LOGGER.info(
            "Native capture stopped after %.1f seconds of audio", self._writer.duration_seconds
        )
        return self._path.read_bytes()

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            with contextlib.suppress(Exception):
                stream.abort()
            with contextlib.suppress(Exception):
                stream.close()
        self._stop_event.set()
        if self._writer_thread is not None:
            self._writer_thread.join(timeout=1)
            self._writer_thread = None
        if self._writer is not None:
            self._writer.close()
        while not self._queue.empty():
            with contextlib.suppress(queue.Empty):
                self._queue.get_nowait()
        if self._path is not None and not self._settings.keep_recordings:
            self._path.unlink(missing_ok=True)


__all__ = ["NativeCapture", "load_sounddevice"]
