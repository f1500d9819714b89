"""CEFR level labels and terminal colours."""

from __future__ import annotations

from typing import Dict

import typer

from .models import CEFRLevel

CEFR_LABELS: Dict[CEFRLevel, str] = {
    CEFRLevel.A1: "Beginner",
    CEFRLevel.A2: "Elementary",
    CEFRLevel.B1: "Intermediate",
    CEFRLevel.B2: "Upper Intermediate",
    CEFRLevel.C1: "Advanced",
    CEFRLevel.C2: "Proficient",
}

CEFR_COLORS: Dict[CEFRLevel, str] = {
    CEFRLevel.A1: typer.colors.RED,
    CEFRLevel.A2: typer.colors.YELLOW,
    CEFRLevel.B1: typer.colors.GREEN,
    CEFRLevel.B2: typer.colors.BLUE,
    CEFRLevel.C1: typer.colors.CYAN,
    CEFRLevel.C2: typer.colors.MAGENTA,
}


def _coerce(level: object) -> CEFRLevel:
    try:
        return CEFRLevel(str(getattr(level, "value", level)).upper())
    except ValueError:
        return CEFRLevel.A1


def cefr_label(level: object) -> str:
    return CEFR_LABELS[_coerce(level)]


def cefr_color(level: object) -> str:
    return CEFR_COLORS[_coerce(level)]


__all__ = ["CEFR_COLORS", "CEFR_LABELS", "cefr_color", "cefr_label"]
