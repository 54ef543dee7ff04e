"""Dealer and activity record types with JSON (camelCase) conversion."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from outreach_mcp.constants import DEFAULT_STATUS, UNNAMED_DEALER
from outreach_mcp.normalization import (
    as_id,
    as_optional_text,
    as_text,
    format_timestamp,
    normalize_activity_type,
    normalize_status,
    now_utc,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# JSON key -> attribute name, in serialization order.
DEALER_KEYS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "address": "address",
    "phone": "phone",
    "email": "email",
    "website": "website",
    "contactPerson": "contact_person",
    "lastContact": "last_contact",
    "status": "status",
    "notes": "notes",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

ACTIVITY_KEYS: dict[str, str] = {
    "id": "id",
    "dealerId": "dealer_id",
    "date": "date",
    "type": "type",
    "notes": "notes",
    "followUpDate": "follow_up_date",
    "statusUpdate": "status_update",
    "createdAt": "created_at",
}

# Fields joined for free-text search, in display order.
SEARCHABLE_DEALER_FIELDS = (
    "name", "address", "contact_person", "phone", "email", "status", "notes",
)

_MIN_TICK = timedelta(milliseconds=1)


def new_dealer_id() -> str:
    return f"dealer-{uuid.uuid4().hex[:12]}"


def new_activity_id() -> str:
    return f"act-{uuid.uuid4().hex[:12]}"


def next_timestamp(previous: datetime | None = None) -> datetime:
    """Current UTC time, nudged forward so it is strictly after ``previous``.

    Serialized timestamps carry millisecond precision, so the nudge is one
    millisecond.
    """
    now = now_utc()
    now = now.replace(microsecond=now.microsecond // 1000 * 1000)
    if previous is not None and now <= previous:
        return previous + _MIN_TICK
    return now


def _extras(raw: dict[str, Any], known: dict[str, str]) -> dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in known}


@dataclass
class DealerRecord:
    """One outreach target in the directory."""

    id: str
    name: str
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    contact_person: str | None = None
    last_contact: str | None = None
    status: str = DEFAULT_STATUS
    notes: str | None = None
    created_at: datetime = field(default_factory=next_timestamp)
    updated_at: datetime = field(default_factory=next_timestamp)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw: dict[str, Any], *, now: datetime | None = None) -> DealerRecord:
        """Build a record from a remote/local payload, filling every missing field.

        Display fields default to ``""`` here; only caller entry (see
        ``DealerDirectoryStore.add_dealer``) stores ``None`` for cleared fields.
        """
        stamp = now or next_timestamp()
        status = normalize_status(raw.get("status"))
        if status is None:
            if raw.get("status"):
                logger.warning(
                    "Unknown dealer status %r on %r; resetting to %s",
                    raw.get("status"),
                    raw.get("id"),
                    DEFAULT_STATUS,
                )
            status = DEFAULT_STATUS
        return cls(
            id=as_id(raw.get("id")) or new_dealer_id(),
            name=as_text(raw.get("name"), UNNAMED_DEALER),
            address=as_text(raw.get("address")),
            phone=as_text(raw.get("phone")),
            email=as_text(raw.get("email")),
            website=as_text(raw.get("website")),
            contact_person=as_text(raw.get("contactPerson")),
            last_contact=as_optional_text(raw.get("lastContact")),
            status=status,
            notes=as_text(raw.get("notes")),
            created_at=parse_timestamp(raw.get("createdAt")) or stamp,
            updated_at=parse_timestamp(raw.get("updatedAt")) or stamp,
            extras=_extras(raw, DEALER_KEYS),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key, attr in DEALER_KEYS.items():
            value = getattr(self, attr)
            payload[key] = format_timestamp(value) if isinstance(value, datetime) else value
        # Known fields win over extension keys of the same name.
        return {**self.extras, **payload}

    def search_text(self) -> str:
        return " ".join(str(getattr(self, f) or "") for f in SEARCHABLE_DEALER_FIELDS).lower()

    def copy(self) -> DealerRecord:
        return replace(self, extras=dict(self.extras))


@dataclass
class ActivityEntry:
    """A logged interaction against a dealer; append-only."""

    id: str
    dealer_id: str
    date: str
    type: str
    notes: str
    follow_up_date: str | None = None
    status_update: str | None = None
    created_at: datetime = field(default_factory=next_timestamp)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> ActivityEntry:
        raw_type = raw.get("type")
        return cls(
            id=as_id(raw.get("id")) or new_activity_id(),
            dealer_id=as_id(raw.get("dealerId")) or "",
            date=as_text(raw.get("date")),
            type=normalize_activity_type(raw_type) or as_text(raw_type, "other"),
            notes=as_text(raw.get("notes")),
            follow_up_date=as_optional_text(raw.get("followUpDate")),
            status_update=as_optional_text(raw.get("statusUpdate")),
            created_at=parse_timestamp(raw.get("createdAt")) or next_timestamp(),
            extras=_extras(raw, ACTIVITY_KEYS),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key, attr in ACTIVITY_KEYS.items():
            value = getattr(self, attr)
            payload[key] = format_timestamp(value) if isinstance(value, datetime) else value
        return {**self.extras, **payload}

    def copy(self) -> ActivityEntry:
        return replace(self, extras=dict(self.extras))
