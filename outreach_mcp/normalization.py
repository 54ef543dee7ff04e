"""Shared canonical normalization functions for dealer and activity data.

Used by the record types, the directory store and the JSON resource service.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from outreach_mcp.constants import ACTIVITY_TYPES, DEALER_STATUSES

_STATUS_LOOKUP: dict[str, str] = {s.lower(): s for s in DEALER_STATUSES}
_SEPARATOR_RE = re.compile(r"[\s_\-]+")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def as_text(value: Any, default: str = "") -> str:
    """Coerce to ``str``; ``None`` and blank strings give ``default``."""
    if is_blank(value):
        return default
    return str(value)


def as_optional_text(value: Any) -> str | None:
    """Like :func:`as_text` but blank input becomes ``None``."""
    if is_blank(value):
        return None
    return str(value)


def as_id(value: Any) -> str | None:
    """Opaque identifiers are compared as text; ``42`` and ``"42"`` are the same id."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def blank_to_none(fields: dict[str, Any]) -> dict[str, Any]:
    """Replace empty-string values with ``None`` (form entry normalization)."""
    return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in fields.items()}


def normalize_status(raw: Any) -> str | None:
    """Map raw status text to its canonical label.  Returns ``None`` if unknown.

    Case-insensitive; ``-`` and ``_`` count as spaces (``follow-up`` → ``Follow Up``).
    """
    if not isinstance(raw, str) or not raw.strip():
        return None
    key = _SEPARATOR_RE.sub(" ", raw.strip()).lower()
    return _STATUS_LOOKUP.get(key)


def normalize_activity_type(raw: Any) -> str | None:
    """Map raw activity type to its canonical key.  Returns ``None`` if unknown."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    key = _SEPARATOR_RE.sub("_", raw.strip()).lower()
    return key if key in ACTIVITY_TYPES else None


def status_slug(status: str) -> str:
    """CSS-style slug for a status label (``Follow Up`` → ``follow-up``)."""
    return _SEPARATOR_RE.sub("-", status.strip()).lower()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Best-effort ISO-8601 parsing.  Naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )
