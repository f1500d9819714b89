"""Terminal rendering for speaking sessions and history."""

from __future__ import annotations

from typing import Iterable, List, Optional

import typer

from ..core.session import SessionListener, SessionState, SpeakingSession
from ..data.cefr import cefr_color, cefr_label
from ..data.models import SpeakingResult

_PREVIEW_CHARS = 60


def _level_badge(level) -> str:
    value = getattr(level, "value", level)
    return typer.style(f"{value} {cefr_label(level)}", fg=cefr_color(level), bold=True)


def format_clock(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


def render_result(result: SpeakingResult) -> str:
    """Return the full result screen as text."""

    lines: List[str] = [
        typer.style(result.topic, bold=True),
        f"Level: {_level_badge(result.cefr_level)}",
        f"  {result.cefr_explanation}",
        "",
        f"Words: {result.word_count}   WPM: {result.wpm}   Time: {format_clock(result.duration_seconds)}",
        "",
        typer.style("What you said", bold=True),
        f"  {result.transcribed_text or '(nothing was recognised)'}",
    ]
    if result.good_points:
        lines.append("")
        lines.append(typer.style("Good points", fg=typer.colors.GREEN, bold=True))
        lines.extend(f"  + {point}" for point in result.good_points)
    if result.grammar_notes:
        lines.append("")
        lines.append(typer.style("Grammar notes", fg=typer.colors.YELLOW, bold=True))
        lines.extend(f"  - {note}" for note in result.grammar_notes)
    lines.append("")
    lines.append(result.encouragement)
    return "\n".join(lines)


def format_history_table(results: Iterable[SpeakingResult]) -> str:
    rows = []
    for result in results:
        rows.append(
            f"{result.id:<15} {result.created_at[:16].replace('T', ' '):<17} "
            f"{getattr(result.cefr_level, 'value', result.cefr_level):<3} "
            f"{result.wpm:>4} wpm  {result.topic}"
        )
    if not rows:
        return "No practice sessions yet."
    header = f"{'ID':<15} {'DATE':<17} {'LVL':<3} {'SPEED':>8}  TOPIC"
    return "\n".join([header, *rows])


class ConsoleSessionView(SessionListener):
    """Prints countdown, timer and live transcript updates to the terminal."""

    def __init__(self, max_seconds: int, *, echo=typer.echo) -> None:
        self.max_seconds = max_seconds
        self._echo = echo
        self._last_transcript: Optional[str] = None

    def on_countdown(self, remaining: int) -> None:
        if remaining > 0:
            self._echo(typer.style(f"  {remaining}...", bold=True))
        else:
            self._echo(typer.style("Start speaking!", fg=typer.colors.GREEN, bold=True))

    def on_elapsed(self, elapsed: int, remaining: int) -> None:
        colour = typer.colors.RED if remaining <= 10 else None
        self._echo(
            typer.style(f"  {format_clock(elapsed)} / {format_clock(self.max_seconds)}", fg=colour)
        )

    def on_transcript(self, text: str) -> None:
        if text == self._last_transcript:
            return
        self._last_transcript = text
        preview = text if len(text) <= _PREVIEW_CHARS else "..." + text[-_PREVIEW_CHARS:]
        self._echo(typer.style(f"  > {preview}", dim=True))

    def on_state(self, session: SpeakingSession) -> None:
        if session.state is SessionState.RECORDING:
            self._echo("Recording. Press Enter to stop.")
        elif session.state is SessionState.ANALYZING:
            self._echo("Analyzing your speech...")
        elif session.state is SessionState.ERROR:
            self._echo(typer.style(session.last_error or "Something went wrong.", fg=typer.colors.RED), err=True)
        elif session.state is SessionState.DONE and session.result is not None:
            self._echo("")
            self._echo(render_result(session.result))


__all__ = ["ConsoleSessionView", "format_clock", "format_history_table", "render_result"]
