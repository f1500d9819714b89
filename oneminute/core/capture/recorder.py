"""Encoded stream capture powered by the FFmpeg command line tool."""

from __future__ import annotations

import asyncio
import contextlib
import io
import shutil
import subprocess
import sys
import threading
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, FrozenSet, List, Optional, Sequence, Tuple

from ...config import Settings, get_settings
from ...data.models import CaptureOutput
from ...logging import get_logger
from .base import CaptureBackend, CaptureError, DeviceUnavailable, PermissionDenied

LOGGER = get_logger(__name__)

_PERMISSION_MARKERS = ("permission denied", "access denied", "not authorized", "operation not permitted")


@dataclass(frozen=True)
class EncodingProfile:
    """An output container/codec pair and the mime type it produces."""

    mime_type: str
    encoder: str
    muxer: str
    output_args: Tuple[str, ...] = field(default_factory=tuple)


# Order matters: the first profile the binary supports is used.
ENCODING_PREFERENCES: Sequence[EncodingProfile] = (
    EncodingProfile("audio/webm;codecs=opus", encoder="libopus", muxer="webm"),
    EncodingProfile("audio/webm", encoder="libvorbis", muxer="webm"),
    EncodingProfile("audio/ogg;codecs=opus", encoder="libopus", muxer="ogg"),
    EncodingProfile(
        "audio/mp4",
        encoder="aac",
        muxer="mp4",
        output_args=("-movflags", "frag_keyframe+empty_moov"),
    ),
)


def negotiate_encoding(
    is_supported: Callable[[EncodingProfile], bool],
    preferences: Sequence[EncodingProfile] = ENCODING_PREFERENCES,
) -> EncodingProfile:
    for profile in preferences:
        if is_supported(profile):
            return profile
    raise DeviceUnavailable(
        "FFmpeg supports none of the recording formats: "
        + ", ".join(profile.mime_type for profile in preferences)
    )


def _parse_capability_listing(output: str) -> FrozenSet[str]:
    """Return the component names listed by ``ffmpeg -encoders`` or ``-muxers``."""

    names = set()
    in_table = False
    for line in output.splitlines():
        stripped = line.strip()
        if stripped.startswith("--"):
            in_table = True
            continue
        if not in_table or not stripped:
            continue
        parts = stripped.split()
        if len(parts) >= 2:
            names.update(parts[1].split(","))
    return frozenset(names)


def probe_ffmpeg_capabilities(executable: str) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """Return the encoder and muxer names supported by ``executable``."""

    listings = []
    for flag in ("-encoders", "-muxers"):
        try:
            completed = subprocess.run(  # noqa: S603 - required to query ffmpeg
                [executable, "-hide_banner", flag],
                capture_output=True,
                text=True,
                timeout=10,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise DeviceUnavailable(f"Failed to query FFmpeg capabilities: {exc}") from exc
        listings.append(_parse_capability_listing(completed.stdout))
    return listings[0], listings[1]


def default_input_device(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("darwin"):
        return "avfoundation::0"
    if platform.startswith("win"):
        return "dshow:audio=default"
    return "pulse:default"


def parse_input_device(device: str) -> Tuple[str, str]:
    """Split ``format:target`` (for example ``pulse:default``) into its parts."""

    input_format, sep, target = device.strip().partition(":")
    if not sep or not input_format or not target:
        raise CaptureError(
            "FFmpeg input must look like 'format:target', for example 'pulse:default' "
            "or 'dshow:audio=Microphone'"
        )
    return input_format, target


def _resolve_binary(binary: str) -> Optional[str]:
    """Return the absolute path to the requested FFmpeg binary if available."""

    if not binary:
        binary = "ffmpeg"

    found = shutil.which(binary)
    if found:
        return found

    candidate = Path(binary)
    if candidate.exists():
        return str(candidate)

    return None


class StreamRecorderCapture(CaptureBackend):
    """Records an encoded audio stream from an FFmpeg subprocess.

    Encoded bytes are appended to an in-memory list as soon as FFmpeg writes
    them, so a recorder that only flushes at the end still yields its data.
    """

    name = "recorder"

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        device: Optional[str] = None,
        binary: Optional[str] = None,
        chunk_bytes: int = 4096,
        startup_grace_seconds: float = 0.3,
    ) -> None:
        super().__init__()
        self._settings = settings or get_settings()
        self._device = device or self._settings.recorder_device or default_input_device()
        self._binary = binary or self._settings.ffmpeg_binary
        self._chunk_bytes = chunk_bytes
        self._startup_grace = startup_grace_seconds
        self.profile: Optional[EncodingProfile] = None
        self._command: List[str] = []
        self._process: Optional[subprocess.Popen] = None
        self._chunks: List[bytes] = []
        self._chunks_lock = threading.Lock()
        self._stderr_tail: Deque[str] = deque(maxlen=20)
        self._reader_thread: Optional[threading.Thread] = None
        self._stderr_thread: Optional[threading.Thread] = None

    @property
    def bytes_captured(self) -> int:
        with self._chunks_lock:
            return sum(len(chunk) for chunk in self._chunks)

    async def _prepare(self) -> None:
        await asyncio.to_thread(self._negotiate)

    def _negotiate(self) -> None:
        executable = _resolve_binary(self._binary)
        if executable is None:
            raise DeviceUnavailable(
                f"FFmpeg binary '{self._binary}' was not found. Install FFmpeg or set ONEMINUTE_FFMPEG_BINARY."
            )
        encoders, muxers = probe_ffmpeg_capabilities(executable)
        self.profile = negotiate_encoding(
            lambda profile: profile.encoder in encoders and profile.muxer in muxers
        )
        input_format, target = parse_input_device(self._device)
        self._command = self._build_command(executable, input_format, target)
        LOGGER.info("Recorder negotiated %s from %s", self.profile.mime_type, self._device)

    def _build_command(self, executable: str, input_format: str, target: str) -> List[str]:
        assert self.profile is not None
        command: List[str] = [executable, "-hide_banner", "-loglevel", "warning", "-nostats"]
        command.extend(["-f", input_format, "-i", target])
        command.extend(["-vn", "-sn", "-dn"])
        command.extend(["-ac", str(self._settings.channels)])
        command.extend(["-ar", str(self._settings.sample_rate)])
        command.extend(["-c:a", self.profile.encoder])
        command.extend(self.profile.output_args)
        command.extend(["-f", self.profile.muxer, "pipe:1"])
        return command

    async def _start(self) -> None:
        await asyncio.to_thread(self._launch)

    def _launch(self) -> None:
        LOGGER.info("Starting FFmpeg recorder: %s", " ".join(self._command))
        try:
            process = subprocess.Popen(  # noqa: S603 - required to spawn ffmpeg
                self._command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except OSError as exc:
            raise DeviceUnavailable(f"Failed to launch FFmpeg: {exc}") from exc

        self._process = process
        self._reader_thread = threading.Thread(target=self._reader_loop, args=(process.stdout,), daemon=True)
        self._reader_thread.start()
        self._stderr_thread = threading.Thread(target=self._stderr_loop, args=(process.stderr,), daemon=True)
        self._stderr_thread.start()

        try:
            returncode = process.wait(timeout=self._startup_grace)
        except subprocess.TimeoutExpired:
            return

        self._stderr_thread.join(timeout=1)
        detail = " | ".join(self._stderr_tail) or "no output"
        self._release()
        if any(marker in detail.lower() for marker in _PERMISSION_MARKERS):
            raise PermissionDenied(f"Microphone access was refused: {detail}")
        raise DeviceUnavailable(f"FFmpeg exited with code {returncode} while starting: {detail}")

    def _reader_loop(self, stdout: io.BufferedReader) -> None:
        while True:
            data = stdout.read(self._chunk_bytes)
            if not data:
                break
            with self._chunks_lock:
                self._chunks.append(data)

    def _stderr_loop(self, pipe: io.BufferedReader) -> None:  # pragma: no cover - runtime logging
        for line in iter(pipe.readline, b""):
            text = line.decode(errors="ignore").strip()
            if text:
                self._stderr_tail.append(text)
                LOGGER.debug("ffmpeg: %s", text)

    async def _stop(self) -> CaptureOutput:
        audio = await asyncio.to_thread(self._finish)
        assert self.profile is not None
        return CaptureOutput(mime_type=self.profile.mime_type, audio=audio)

    def _finish(self) -> bytes:
        process = self._process
        if process is None:
            raise CaptureError("FFmpeg recorder is not running")

        flush_timeout = max(self._settings.stop_flush_seconds, 0.1)
        if process.stdin is not None:
            # 'q' makes FFmpeg finalise the container before exiting.
            with contextlib.suppress(OSError, ValueError):
                process.stdin.write(b"q")
                process.stdin.flush()
            with contextlib.suppress(OSError, ValueError):
                process.stdin.close()
        try:
            process.wait(timeout=flush_timeout)
        except subprocess.TimeoutExpired:
            LOGGER.warning("FFmpeg did not exit within %.1fs; terminating", flush_timeout)
            process.terminate()
            try:
                process.wait(timeout=1)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

        if self._reader_thread is not None:
            self._reader_thread.join(timeout=flush_timeout + 1)
            self._reader_thread = None

        with self._chunks_lock:
            audio = b"".join(self._chunks)
        LOGGER.info("FFmpeg recorder stopped with %s bytes (exit code %s)", len(audio), process.returncode)
        if not audio:
            detail = " | ".join(self._stderr_tail) or "no output"
            raise CaptureError(f"FFmpeg produced no audio: {detail}")
        return audio

    def _release(self) -> None:
        process, self._process = self._process, None
        if process is not None:
            if process.poll() is None:
                with contextlib.suppress(Exception):
                    process.kill()
                with contextlib.suppress(Exception):
                    process.wait(timeout=1)
            for pipe in (process.stdin, process.stdout, process.stderr):
                if pipe is not None:
                    with contextlib.suppress(Exception):
                        pipe.close()
        for thread in (self._reader_thread, self._stderr_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=1)
        self._reader_thread = None
        self._stderr_thread = None
        with self._chunks_lock:
            self._chunks.clear()


__all__ = [
    "ENCODING_PREFERENCES",
    "EncodingProfile",
    "StreamRecorderCapture",
    "default_input_device",
    "negotiate_encoding",
    "parse_input_device",
    "probe_ffmpeg_capabilities",
]
