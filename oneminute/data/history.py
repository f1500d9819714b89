"""SQLite backed history of speaking results."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..logging import get_logger
from .models import SpeakingResult

LOGGER = get_logger(__name__)

HISTORY_KEY = "speaking_history"
DEFAULT_HISTORY_LIMIT = 50


class HistoryStore:
    """Newest-first list of results persisted as one JSON value under a fixed key."""

    def __init__(self, path: Path, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.limit = limit

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def _read(self) -> List[SpeakingResult]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM storage WHERE key = ?", (HISTORY_KEY,)
            ).fetchone()
        if not row:
            return []
        try:
            return [SpeakingResult.model_validate(item) for item in json.loads(row[0])]
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            LOGGER.warning("Stored history is unreadable; treating it as empty: %s", exc)
            return []

    def _write(self, results: List[SpeakingResult]) -> None:
        payload = json.dumps([result.to_json() for result in results], ensure_ascii=False)
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO storage (key, value) VALUES (?, ?)",
                (HISTORY_KEY, payload),
            )
            conn.commit()

    def append(self, result: SpeakingResult) -> None:
        history = self._read()
        history.insert(0, result)
        dropped = len(history) - self.limit
        if dropped > 0:
            LOGGER.debug("Dropping %s oldest history entries", dropped)
        self._write(history[: self.limit])

    def list(self) -> List[SpeakingResult]:
        return self._read()

    def recent(self, count: int = 5) -> List[SpeakingResult]:
        return self._read()[:count]

    def get(self, result_id: str) -> Optional[SpeakingResult]:
        for result in self._read():
            if result.id == result_id:
                return result
        return None

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM storage WHERE key = ?", (HISTORY_KEY,))
            conn.commit()


__all__ = ["DEFAULT_HISTORY_LIMIT", "HISTORY_KEY", "HistoryStore"]
