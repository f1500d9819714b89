"""Capture backend abstraction shared by every recording variant."""

from __future__ import annotations

import abc
from typing import Callable, Optional

from ...data.models import CaptureOutput
from ...logging import get_logger

LOGGER = get_logger(__name__)


class CaptureError(RuntimeError):
    """Raised when audio or speech capture fails."""


class PermissionDenied(CaptureError):
    """Raised when the platform refuses access to the microphone."""


class DeviceUnavailable(CaptureError):
    """Raised when the capture API or device is missing in this environment."""


class AlreadyStopped(CaptureError):
    """Raised when ``stop()`` is called a second time."""


class CaptureBackend(abc.ABC):
    """Lifecycle shared by all capture variants.

    A backend is used for exactly one session: ``request_permission()`` and
    ``prepare()`` acquire resources, ``start()`` begins accumulating audio or
    transcript text, ``stop()`` finalises and returns it. ``cleanup()`` releases
    everything and may be called at any point, any number of times.
    """

    name: str = "capture"

    def __init__(self) -> None:
        self._prepared = False
        self._started = False
        self._stopped = False

    async def request_permission(self) -> None:
        """Ask the platform for microphone access before ``prepare()``."""

    async def prepare(self) -> None:
        if self._prepared:
            LOGGER.debug("%s capture already prepared", self.name)
            return
        try:
            await self._prepare()
        except CaptureError:
            raise
        except Exception as exc:
            raise DeviceUnavailable(f"Failed to prepare {self.name} capture: {exc}") from exc
        self._prepared = True

    async def start(self) -> None:
        if not self._prepared:
            raise CaptureError(f"{self.name} capture must be prepared before start")
        if self._started:
            raise CaptureError(f"{self.name} capture already started")
        try:
            await self._start()
        except CaptureError:
            raise
        except Exception as exc:
            raise DeviceUnavailable(f"Failed to start {self.name} capture: {exc}") from exc
        self._started = True

    async def stop(self) -> CaptureOutput:
        if self._stopped:
            raise AlreadyStopped(f"{self.name} capture was already stopped")
        if not self._started:
            raise CaptureError(f"{self.name} capture was never started")
        self._stopped = True
        try:
            return await self._stop()
        except CaptureError:
            self.cleanup()
            raise
        except Exception as exc:
            self.cleanup()
            raise CaptureError(f"Failed to finalise {self.name} capture: {exc}") from exc

    def cleanup(self) -> None:
        try:
            self._release()
        except Exception:
            LOGGER.exception("Failed to release %s capture resources", self.name)

    def set_progress_callback(self, callback: Optional[Callable[[str], None]]) -> None:
        """Receive live transcript snapshots; only speech recognition produces them."""

    @property
    def failure(self) -> Optional[str]:
        """Reason capture died while recording, or ``None`` while healthy."""

        return None

    @property
    def is_active(self) -> bool:
        return self._started and not self._stopped

    @abc.abstractmethod
    async def _prepare(self) -> None:
        """Acquire permission-gated resources."""

    @abc.abstractmethod
    async def _start(self) -> None:
        """Begin capturing."""

    @abc.abstractmethod
    async def _stop(self) -> CaptureOutput:
        """Finish capturing, release hardware and return the captured data."""

    @abc.abstractmethod
    def _release(self) -> None:
        """Release every resource; must tolerate partially initialised state."""


def describe_output(output: Optional[CaptureOutput]) -> str:
    if output is None:
        return "nothing"
    if output.audio is not None:
        return f"{len(output.audio)} bytes of {output.mime_type}"
    return f"{len(output.transcript or '')} characters of transcript"


__all__ = [
    "AlreadyStopped",
    "CaptureBackend",
    "CaptureError",
    "DeviceUnavailable",
    "PermissionDenied",
    "describe_output",
]
