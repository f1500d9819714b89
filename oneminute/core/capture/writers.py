"""PCM helpers shared by the capture backends."""

from __future__ import annotations

import wave
from pathlib import Path

import numpy as np


def float_to_pcm16(data: np.ndarray) -> bytes:
    """Convert float samples in ``[-1, 1]`` to mono little-endian 16-bit PCM."""

    if data.ndim > 1 and data.shape[1] > 1:
        data = data.mean(axis=1)
    clipped = np.clip(data.reshape(-1), -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16).tobytes()


class AudioFileWriter:
    """Mono 16-bit wave file fed with float blocks from the input stream.

    Multi-channel blocks are mixed down, since a session records one speaker.
    """

    def __init__(self, path: Path, sample_rate: int) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.sample_rate = sample_rate
        self._wave = wave.open(str(self.path), "wb")
        self._wave.setnchannels(1)
        self._wave.setsampwidth(2)
        self._wave.setframerate(sample_rate)
        self._frames = 0
        self._closed = False

    def write(self, block: np.ndarray) -> None:
        pcm = float_to_pcm16(block)
        self._wave.writeframes(pcm)
        self._frames += len(pcm) // 2

    @property
    def duration_seconds(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self._frames / float(self.sample_rate)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wave.close()


__all__ = ["AudioFileWriter", "float_to_pcm16"]
