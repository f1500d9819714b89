"""Typer CLI entry point for One Minute English."""

from __future__ import annotations

import asyncio
import sys
import threading
from typing import Optional

import typer

from .config import (
    EnvironmentSettingError,
    clear_environment_setting,
    get_settings,
    list_environment_settings,
    update_environment_setting,
)
from .core.capture.factory import CaptureConfigurationError, create_capture_backend
from .core.session import SessionController, SessionState, SpeakingSession
from .data.history import HistoryStore
from .data.topics import FREE_TALK, SPEAKING_TOPICS, get_topic, next_topic, random_topic
from .logging import configure_logging, get_logger
from .services.factory import ServiceConfigurationError, build_analysis_client
from .ui.console import ConsoleSessionView, format_history_table, render_result

app = typer.Typer(help="One Minute English speaking practice")
LOGGER = get_logger(__name__)


def _open_history() -> HistoryStore:
    settings = get_settings()
    store = HistoryStore(settings.history_path, limit=settings.history_limit)
    store.initialize()
    return store


def _resolve_topic(topic_id: Optional[int], free_talk: bool, next_after: Optional[int] = None) -> str:
    if free_talk:
        return FREE_TALK
    if next_after is not None:
        if topic_id is not None:
            raise typer.BadParameter("Use either --topic or --next-after, not both")
        return next_topic(next_after).title
    if topic_id is None:
        return random_topic().title
    topic = get_topic(topic_id)
    if topic is None:
        raise typer.BadParameter(f"Unknown topic id: {topic_id}")
    return topic.title


def _watch_for_enter(loop: asyncio.AbstractEventLoop, controller: SessionController) -> None:
    while not controller.session.is_terminal and not controller.abandoned:
        try:
            line = sys.stdin.readline()
        except (OSError, ValueError):
            return
        if not line:
            return
        try:
            loop.call_soon_threadsafe(controller.request_stop)
        except RuntimeError:
            return


async def _drive(controller: SessionController) -> SpeakingSession:
    loop = asyncio.get_running_loop()
    watcher = threading.Thread(
        target=_watch_for_enter, args=(loop, controller), name="oneminute-stdin", daemon=True
    )
    watcher.start()
    return await controller.run()


@app.command()
def practice(
    topic_id: Optional[int] = typer.Option(None, "--topic", "-t", help="Topic id; random when omitted"),
    free_talk: bool = typer.Option(False, "--free-talk", help="Talk about anything you like"),
    next_after: Optional[int] = typer.Option(
        None, "--next-after", help="Practise the topic that follows this id, wrapping to the first"
    ),
    backend: Optional[str] = typer.Option(None, help="Capture backend: auto/native/recorder/speech"),
    transcription_backend: Optional[str] = typer.Option(None, help="Transcription backend: none/dummy/openai"),
    feedback_backend: Optional[str] = typer.Option(None, help="Feedback backend: dummy/openai"),
) -> None:
    """Speak about a topic for up to one minute and get feedback."""

    configure_logging()
    settings = get_settings()
    topic = _resolve_topic(topic_id, free_talk, next_after)

    try:
        capture = create_capture_backend(backend, settings)
    except CaptureConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    try:
        analysis = build_analysis_client(
            transcription_backend or settings.transcription_backend,
            feedback_backend or settings.feedback_backend,
        )
    except ServiceConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    controller = SessionController(
        capture,
        analysis,
        _open_history(),
        topic=topic,
        settings=settings,
        listener=ConsoleSessionView(settings.max_duration_seconds),
    )

    typer.echo(typer.style(f"Topic: {topic}", bold=True))
    typer.echo(f"Get ready. Speak for {settings.min_duration_seconds}-{settings.max_duration_seconds} seconds.")
    try:
        session = asyncio.run(_drive(controller))
    except KeyboardInterrupt:
        controller.leave()
        typer.echo("\nSession abandoned.")
        raise typer.Exit(code=130)

    if session.state is SessionState.ERROR:
        raise typer.Exit(code=1)


@app.command()
def topics() -> None:
    """List the practice topics."""

    for topic in SPEAKING_TOPICS:
        typer.echo(f"{topic.id:>3}  {topic.emoji}  {topic.title}")


@app.command()
def history(limit: int = typer.Option(10, help="Number of recent sessions to show")) -> None:
    """Show recent practice sessions, newest first."""

    configure_logging()
    typer.echo(format_history_table(_open_history().recent(limit)))


@app.command()
def show(result_id: str = typer.Argument(..., help="Result id from `history`")) -> None:
    """Show the full feedback for one session."""

    configure_logging()
    result = _open_history().get(result_id)
    if result is None:
        raise typer.BadParameter(f"No session with id {result_id}")
    typer.echo(render_result(result))


@app.command("clear-history")
def clear_history(yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")) -> None:
    """Delete all stored practice sessions."""

    configure_logging()
    if not yes and not typer.confirm("Delete all practice history?"):
        raise typer.Abort()
    _open_history().clear()
    typer.echo("History cleared.")


@app.command("settings")
def show_settings() -> None:
    """List configuration values and their environment variables."""

    for setting in list_environment_settings():
        value = "********" if setting.field == "openai_api_key" and setting.value else setting.value
        typer.echo(f"{setting.env_name}={value}  (default: {setting.default})")


@app.command("set")
def set_setting(
    field: str = typer.Argument(..., help="Setting name, e.g. capture_backend"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Persist a setting override in the .env file."""

    try:
        update_environment_setting(field, value)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Updated {field}.")


@app.command("unset")
def unset_setting(field: str = typer.Argument(..., help="Setting name")) -> None:
    """Remove a setting override from the .env file."""

    try:
        clear_environment_setting(field)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Cleared {field}.")


if __name__ == "__main__":  # pragma: no cover
    app()
