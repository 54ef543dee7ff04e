"""Local fallback persistence: named JSON slots that survive a restart."""

from __future__ import annotations

import copy
import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_CREATE_SQL = """\
CREATE TABLE IF NOT EXISTS fallback_slots (
    slot        TEXT PRIMARY KEY,
    payload     TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""


@runtime_checkable
class FallbackStore(Protocol):
    """Minimal interface for local slot persistence."""

    def load(self, slot: str) -> Any | None: ...
    def save(self, slot: str, payload: Any) -> None: ...


class SqliteFallbackStore:
    """Thread-safe slot store in a single SQLite table, one row per slot."""

    def __init__(self, db_path: str = ":memory:") -> None:
        if db_path != ":memory:":
            parent = os.path.dirname(db_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_CREATE_SQL)

    def load(self, slot: str) -> Any | None:
        """Return the decoded payload for ``slot``, or None if absent/unreadable."""
        with self._lock:
            row = self._conn.execute(
                "SELECT payload FROM fallback_slots WHERE slot = ?",
                (slot,),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable fallback slot %s: %s", slot, exc)
            return None

    def save(self, slot: str, payload: Any) -> None:
        """Replace the contents of ``slot``. Raises on serialization/IO errors."""
        encoded = json.dumps(payload)
        now_iso = datetime.now(timezone.utc).isoformat()
        with self._lock:
            self._conn.execute(
                """INSERT INTO fallback_slots (slot, payload, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(slot) DO UPDATE SET
                       payload = excluded.payload,
                       updated_at = excluded.updated_at""",
                (slot, encoded, now_iso),
            )
            self._conn.commit()

    def slots(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT slot FROM fallback_slots ORDER BY slot"
            ).fetchall()
        return [r[0] for r in rows]

    def reset(self) -> None:
        """Clear all slots. Intended for tests."""
        with self._lock:
            self._conn.execute("DELETE FROM fallback_slots")
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class MemoryFallbackStore:
    """In-process slot store; payloads are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._slots: dict[str, Any] = copy.deepcopy(initial or {})

    def load(self, slot: str) -> Any | None:
        return copy.deepcopy(self._slots.get(slot))

    def save(self, slot: str, payload: Any) -> None:
        self._slots[slot] = copy.deepcopy(payload)

    def slots(self) -> list[str]:
        return sorted(self._slots)

    def reset(self) -> None:
        self._slots.clear()
