"""User interface components for One Minute English."""

from .console import ConsoleSessionView, format_history_table, render_result

__all__ = ["ConsoleSessionView", "format_history_table", "render_result"]
