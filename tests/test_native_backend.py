from __future__ import annotations

import asyncio
import io
import wave

import numpy as np
import pytest

from oneminute.config import Settings
from oneminute.core.capture.base import AlreadyStopped, DeviceUnavailable, PermissionDenied
from oneminute.core.capture.native import NativeCapture
from oneminute.core.session import ErrorKind, SessionController, SessionState
from oneminute.data.history import HistoryStore
from oneminute.services.analysis import AnalysisClient
from oneminute.services.feedback.dummy import DummyFeedbackService


class FakePortAudioError(Exception):
    pass


class FakeStream:
    def __init__(self, callback, samplerate, channels, blocks, start_error=None) -> None:
        self.callback = callback
        self.start_error = start_error
        self.samplerate = samplerate
        self.channels = channels
        self.blocks = blocks
        self.started = False
        self.closed = False

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True
        for _ in range(self.blocks):
            block = np.full((1600, self.channels), 0.25, dtype=np.float32)
            self.callback(block, block.shape[0], None, None)

    def stop(self) -> None:
        self.started = False

    def abort(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True


class FakeSoundDevice:
    PortAudioError = FakePortAudioError

    def __init__(self, info=None, *, rejected_rates=(), blocks=3, start_error=None) -> None:
        self.start_error = start_error
        self.info = info if info is not None else {
            "name": "Built-in Microphone",
            "max_input_channels": 1,
            "default_samplerate": 44100.0,
        }
        self.rejected_rates = set(rejected_rates)
        self.blocks = blocks
        self.streams = []

    def query_devices(self, device=None, kind=None):
        if isinstance(self.info, Exception):
            raise self.info
        return self.info

    def InputStream(self, samplerate, channels, dtype, blocksize, device, callback):
        if samplerate in self.rejected_rates:
            raise FakePortAudioError("Invalid sample rate")
        stream = FakeStream(callback, samplerate, channels, self.blocks, self.start_error)
        self.streams.append(stream)
        return stream


def _capture(tmp_path, sd, **settings_overrides) -> NativeCapture:
    settings = Settings(recordings_dir=tmp_path, **settings_overrides)
    return NativeCapture(settings=settings, sd_module=sd)


async def _record(capture: NativeCapture):
    await capture.request_permission()
    await capture.prepare()
    await capture.start()
    return await capture.stop()


def test_native_capture_returns_wav_bytes(tmp_path):
    sd = FakeSoundDevice()
    capture = _capture(tmp_path, sd)

    output = asyncio.run(_record(capture))
    path = capture.path
    capture.cleanup()

    assert output.mime_type == "audio/wav"
    with wave.open(io.BytesIO(output.audio), "rb") as wav:
        assert wav.getframerate() == 16000
        assert wav.getnchannels() == 1
        assert wav.getnframes() == 3 * 1600
    assert sd.streams[0].closed
    assert not path.exists()


def test_recording_is_kept_when_configured(tmp_path):
    capture = _capture(tmp_path, FakeSoundDevice(), keep_recordings=True)

    asyncio.run(_record(capture))
    capture.cleanup()

    assert capture.path.exists()


def test_sample_rate_falls_back_to_device_default(tmp_path):
    capture = _capture(tmp_path, FakeSoundDevice(rejected_rates={16000}))

    output = asyncio.run(_record(capture))

    assert capture.sample_rate == 44100
    with wave.open(io.BytesIO(output.audio), "rb") as wav:
        assert wav.getframerate() == 44100


def test_permission_refusal_is_reported(tmp_path):
    capture = _capture(tmp_path, FakeSoundDevice(info=FakePortAudioError("Access denied")))

    with pytest.raises(PermissionDenied):
        asyncio.run(capture.request_permission())


@pytest.mark.parametrize(
    "info",
    [ValueError("No input device matching 'usb'"), {"name": "HDMI", "max_input_channels": 0}],
)
def test_missing_input_device_is_unavailable(tmp_path, info):
    capture = _capture(tmp_path, FakeSoundDevice(info=info))

    with pytest.raises(DeviceUnavailable):
        asyncio.run(capture.request_permission())


def test_second_stop_is_rejected(tmp_path):
    capture = _capture(tmp_path, FakeSoundDevice())

    async def scenario():
        await _record(capture)
        await capture.stop()

    with pytest.raises(AlreadyStopped):
        asyncio.run(scenario())
    capture.cleanup()
    capture.cleanup()


def test_cleanup_before_start_is_safe(tmp_path):
    capture = _capture(tmp_path, FakeSoundDevice())

    asyncio.run(capture.prepare())
    capture.cleanup()

    assert not capture.is_active


def test_stream_start_failure_is_unavailable_and_released(tmp_path):
    sd = FakeSoundDevice(start_error=FakePortAudioError("Device unavailable [PaErrorCode -9985]"))
    capture = _capture(tmp_path, sd)

    async def scenario():
        await capture.request_permission()
        await capture.prepare()
        await capture.start()

    with pytest.raises(DeviceUnavailable):
        asyncio.run(scenario())
    capture.cleanup()

    assert sd.streams[0].closed
    assert capture._writer_thread is None
    assert not capture.is_active


def test_session_ends_in_error_when_the_stream_cannot_start(tmp_path):
    sd = FakeSoundDevice(start_error=FakePortAudioError("Device unavailable [PaErrorCode -9985]"))
    capture = _capture(tmp_path, sd)

    async def instant(seconds):
        await asyncio.sleep(0)

    async def scenario():
        history = HistoryStore(tmp_path / "history.db")
        history.initialize()
        controller = SessionController(
            capture,
            AnalysisClient(feedback=DummyFeedbackService()),
            history,
            topic="Your hometown",
            settings=Settings(recordings_dir=tmp_path),
            sleep=instant,
        )
        return await controller.run()

    session = asyncio.run(scenario())

    assert session.state is SessionState.ERROR
    assert session.error_kind is ErrorKind.DEVICE_UNAVAILABLE
    assert sd.streams[0].closed
    assert capture._writer_thread is None


def test_unexpected_setup_errors_become_capture_errors(tmp_path, monkeypatch):
    capture = _capture(tmp_path, FakeSoundDevice())

    def broken_writer(*args, **kwargs):
        raise OSError("Read-only file system")

    monkeypatch.setattr("oneminute.core.capture.native.AudioFileWriter", broken_writer)

    async def scenario():
        await capture.prepare()
        await capture.start()

    with pytest.raises(DeviceUnavailable, match="Read-only file system"):
        asyncio.run(scenario())
    capture.cleanup()
    assert not capture.is_active
