"""Speaking session state machine.

A session counts down, records until the maximum duration or an explicit stop,
then analyses the capture and stores the result::

    countdown -> recording -> analyzing -> done
                     \\             \\
                      +-> error      +-> error

``done`` and ``error`` are terminal. Leaving the session at any point releases
the capture backend; an analysis that finishes after that is discarded.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..config import Settings, get_settings
from ..data.history import HistoryStore
from ..data.models import AnalysisRequest, AnalysisResponse, SpeakingResult
from ..logging import get_logger
from ..services.analysis import AnalysisClient
from ..services.errors import AnalysisFailed
from .capture.base import CaptureBackend, CaptureError, PermissionDenied, describe_output

LOGGER = get_logger(__name__)

PERMISSION_MESSAGE = "Could not access microphone. Please allow microphone permission and try again."
DEVICE_MESSAGE = "Audio capture is not available on this system: {detail}"
TOO_SHORT_MESSAGE = "Please speak for at least {required} seconds. You spoke for {actual} seconds."
CONNECTIVITY_MESSAGE = "Analysis failed. Please check your connection and try again."


class SessionState(str, Enum):
    COUNTDOWN = "countdown"
    RECORDING = "recording"
    ANALYZING = "analyzing"
    DONE = "done"
    ERROR = "error"


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    TOO_SHORT = "too_short"
    ANALYSIS_FAILED = "analysis_failed"


_TERMINAL = frozenset({SessionState.DONE, SessionState.ERROR})


@dataclass
class SpeakingSession:
    topic: str
    countdown_remaining: int
    state: SessionState = SessionState.COUNTDOWN
    elapsed_seconds: int = 0
    start_timestamp: Optional[float] = None
    last_error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    result: Optional[SpeakingResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL


class SessionListener:
    """Receives session progress; every hook is optional."""

    def on_state(self, session: SpeakingSession) -> None:
        pass

    def on_countdown(self, remaining: int) -> None:
        pass

    def on_elapsed(self, elapsed: int, remaining: int) -> None:
        pass

    def on_transcript(self, text: str) -> None:
        pass


def new_result_id(now: datetime) -> str:
    return str(int(now.timestamp() * 1000))


def assemble_result(response: AnalysisResponse, *, now: Optional[datetime] = None) -> SpeakingResult:
    """Merge the analysis response with an id and timestamp into a history record."""

    now = now or datetime.now(timezone.utc)
    created_at = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return SpeakingResult(
        id=new_result_id(now),
        topic=response.topic,
        transcribed_text=response.transcribed_text,
        word_count=response.word_count,
        wpm=response.wpm,
        duration_seconds=response.duration_seconds,
        cefr_level=response.cefr_level,
        cefr_explanation=response.cefr_explanation,
        good_points=list(response.good_points),
        grammar_notes=list(response.grammar_notes),
        encouragement=response.encouragement,
        created_at=created_at,
    )


class SessionController:
    """Drives one :class:`SpeakingSession` from countdown to a terminal state."""

    def __init__(
        self,
        backend: CaptureBackend,
        analysis: AnalysisClient,
        history: HistoryStore,
        *,
        topic: str,
        settings: Optional[Settings] = None,
        listener: Optional[SessionListener] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.backend = backend
        self.analysis = analysis
        self.history = history
        self.settings = settings or get_settings()
        self.listener = listener or SessionListener()
        self._clock = clock
        self._sleep = sleep
        self._now = now
        self.session = SpeakingSession(topic=topic, countdown_remaining=self.settings.countdown_seconds)
        self._stop_latched = False
        self._abandoned = False
        self._finished = asyncio.Event()
        self._ticker: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    async def run(self) -> SpeakingSession:
        self._loop = asyncio.get_running_loop()
        self.backend.set_progress_callback(self._progress_from_thread)
        try:
            await self._countdown()
            if not self._abandoned:
                await self._begin_capture()
            if self.session.state is SessionState.RECORDING:
                self._ticker = asyncio.create_task(self._tick())
            if not self.session.is_terminal and not self._abandoned:
                await self._finished.wait()
        except asyncio.CancelledError:
            self.leave()
            raise
        return self.session

    def request_stop(self) -> bool:
        """Operator stop; ignored unless recording. Must be called on the session's loop."""

        if self.session.state is not SessionState.RECORDING or self._stop_latched:
            return False
        if self._stop_task is not None:
            return False
        self._stop_task = asyncio.ensure_future(self.stop())
        return True

    async def stop(self) -> bool:
        """Run the stop sequence; returns ``False`` if it already ran or nothing is recording."""

        if self._stop_latched or self.session.state is not SessionState.RECORDING:
            return False
        self._stop_latched = True
        self._cancel_ticker()

        duration = self._recorded_seconds()
        minimum = self.settings.min_duration_seconds
        if duration < minimum:
            LOGGER.info("Recording too short (%ss < %ss); discarding capture", duration, minimum)
            self.backend.cleanup()
            self._fail(ErrorKind.TOO_SHORT, TOO_SHORT_MESSAGE.format(required=minimum, actual=duration))
            return True

        self._transition(SessionState.ANALYZING)
        try:
            output = await self.backend.stop()
            LOGGER.info("Captured %s over %ss", describe_output(output), duration)
            request = AnalysisRequest.from_capture(
                output, topic=self.session.topic, duration_seconds=duration
            )
            response = await asyncio.to_thread(self.analysis.analyze, request)
        except (CaptureError, AnalysisFailed) as exc:
            self._fail_analysis(exc)
            return True
        except Exception as exc:
            LOGGER.exception("Unexpected failure while analysing the recording")
            self._fail_analysis(exc)
            return True
        finally:
            self.backend.cleanup()

        if self._abandoned:
            LOGGER.info("Session was left during analysis; discarding the result")
            return True

        result = assemble_result(response, now=self._now())
        try:
            self.history.append(result)
        except sqlite3.Error:
            LOGGER.exception("Failed to save result %s to history", result.id)
        self.session.result = result
        self._transition(SessionState.DONE)
        return True

    def leave(self) -> None:
        """Abandon the session: stop timers and release the capture unconditionally."""

        if self._abandoned:
            return
        self._abandoned = True
        LOGGER.info("Leaving session in state %s", self.session.state.value)
        self._cancel_ticker()
        self.backend.cleanup()
        self._finished.set()

    async def _countdown(self) -> None:
        while self.session.countdown_remaining > 0:
            self._notify("on_countdown", self.session.countdown_remaining)
            await self._sleep(self.settings.tick_seconds)
            if self._abandoned:
                return
            self.session.countdown_remaining -= 1
        self._notify("on_countdown", 0)

    async def _begin_capture(self) -> None:
        try:
            await self.backend.request_permission()
            await self.backend.prepare()
            await self.backend.start()
        except PermissionDenied as exc:
            LOGGER.warning("Microphone permission denied: %s", exc)
            self.backend.cleanup()
            self._fail(ErrorKind.PERMISSION_DENIED, PERMISSION_MESSAGE)
            return
        except CaptureError as exc:
            LOGGER.warning("Capture unavailable: %s", exc)
            self.backend.cleanup()
            self._fail(ErrorKind.DEVICE_UNAVAILABLE, DEVICE_MESSAGE.format(detail=exc))
            return

        if self._abandoned:
            self.backend.cleanup()
            return
        self.session.start_timestamp = self._clock()
        self._transition(SessionState.RECORDING)

    async def _tick(self) -> None:
        maximum = self.settings.max_duration_seconds
        while self.session.state is SessionState.RECORDING:
            await self._sleep(self.settings.tick_seconds)
            if self.session.state is not SessionState.RECORDING or self._stop_latched:
                return
            failure = self.backend.failure
            if failure is not None:
                self._abort_capture(failure)
                return
            self.session.elapsed_seconds += 1
            self._notify("on_elapsed", self.session.elapsed_seconds, maximum - self.session.elapsed_seconds)
            if self.session.elapsed_seconds >= maximum:
                LOGGER.info("Maximum duration of %ss reached", maximum)
                self._stop_task = asyncio.ensure_future(self.stop())
                return

    def _abort_capture(self, reason: str) -> None:
        if self._stop_latched:
            return
        self._stop_latched = True
        LOGGER.error("Capture failed while recording: %s", reason)
        self.backend.cleanup()
        self._fail(ErrorKind.ANALYSIS_FAILED, CONNECTIVITY_MESSAGE)

    def _recorded_seconds(self) -> int:
        if self.session.start_timestamp is None:
            return 0
        elapsed = max(self._clock() - self.session.start_timestamp, 0.0)
        return int(elapsed + 0.5)

    def _cancel_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and ticker is not asyncio.current_task() and not ticker.done():
            ticker.cancel()

    def _fail_analysis(self, exc: Exception) -> None:
        if self._abandoned:
            LOGGER.info("Session was left during analysis; ignoring failure: %s", exc)
            return
        LOGGER.error("Analysis failed: %s", exc)
        self._fail(ErrorKind.ANALYSIS_FAILED, CONNECTIVITY_MESSAGE)

    def _fail(self, kind: ErrorKind, message: str) -> None:
        self.session.error_kind = kind
        self.session.last_error = message
        self._transition(SessionState.ERROR)

    def _transition(self, state: SessionState) -> None:
        if self.session.is_terminal:
            LOGGER.debug("Ignoring transition to %s from terminal state", state.value)
            return
        LOGGER.info("Session %s -> %s", self.session.state.value, state.value)
        self.session.state = state
        self._notify("on_state", self.session)
        if self.session.is_terminal:
            self._finished.set()

    def _progress_from_thread(self, text: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._notify, "on_transcript", text)
        except RuntimeError:
            LOGGER.debug("Event loop closed; dropping transcript update")

    def _notify(self, hook: str, *args) -> None:
        if self._abandoned and hook != "on_state":
            return
        try:
            getattr(self.listener, hook)(*args)
        except Exception:
            LOGGER.exception("Session listener %s raised an exception", hook)


__all__ = [
    "CONNECTIVITY_MESSAGE",
    "DEVICE_MESSAGE",
    "ErrorKind",
    "PERMISSION_MESSAGE",
    "SessionController",
    "SessionListener",
    "SessionState",
    "SpeakingSession",
    "TOO_SHORT_MESSAGE",
    "assemble_result",
    "new_result_id",
]
