"""DirectoryBackend protocol and the in-memory dealer directory store.

The store owns the session's dealer records and activity log.  Every write
goes to the remote resource first and is mirrored into a local fallback slot,
so an edit survives even when the network call fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, runtime_checkable

from outreach_mcp.clients.directory import DirectoryClientError
from outreach_mcp.constants import (
    ACTIVITIES_SLOT,
    ACTIVITY_REQUIRED_FIELDS,
    ACTIVITY_TYPES,
    CONTACTED_STATUS,
    DEALER_STATUSES,
    DEALERS_SLOT,
    DEFAULT_ACTIVITY_LIMIT,
    DEFAULT_STATUS,
    NEW_DEALER,
)
from outreach_mcp.data.fallback import FallbackStore
from outreach_mcp.data.records import (
    ACTIVITY_KEYS,
    DEALER_KEYS,
    ActivityEntry,
    DealerRecord,
    new_dealer_id,
    next_timestamp,
)
from outreach_mcp.normalization import (
    as_id,
    as_optional_text,
    blank_to_none,
    is_blank,
    normalize_activity_type,
    normalize_status,
    now_utc,
)

logger = logging.getLogger(__name__)

# snake_case spellings accepted from tool callers.
_DEALER_ALIASES = {
    "contact_person": "contactPerson",
    "last_contact": "lastContact",
}
_ACTIVITY_ALIASES = {
    "dealer_id": "dealerId",
    "follow_up_date": "followUpDate",
    "status_update": "statusUpdate",
}

_DEALER_TEXT_FIELDS = ("address", "phone", "email", "website", "contactPerson", "notes")
_BOOKKEEPING_KEYS = frozenset({"id", "createdAt", "updatedAt"})

DirectoryListener = Callable[[str, Any], None]


@runtime_checkable
class DirectoryBackend(Protocol):
    """Remote persistence boundary for the directory."""

    async def fetch_dealers(self) -> list[dict[str, Any]]: ...
    async def save_dealers(
        self, dealers: list[dict[str, Any]], *, last_updated: str | None = None
    ) -> Any: ...
    async def fetch_activities(self) -> list[dict[str, Any]]: ...
    async def post_activity(self, activity: dict[str, Any]) -> dict[str, Any] | None: ...


# ── Results ─────────────────────────────────────────────────────────


@dataclass
class PersistResult:
    remote_saved: bool
    local_saved: bool
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.remote_saved or self.local_saved


@dataclass
class MutationResult:
    """Outcome of a store write.

    ``saved_locally`` means the remote call failed and only the fallback copy
    was written.  ``error_kind`` is ``validation``, ``not_found`` or
    ``persist`` when ``ok`` is False.
    """

    ok: bool
    record: DealerRecord | ActivityEntry | None = None
    saved_locally: bool = False
    error: str = ""
    error_kind: str = ""


@dataclass
class InitializeResult:
    dealers_source: str = "empty"
    activities_source: str = "empty"
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _canonical_keys(fields: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    return {aliases.get(k, k): v for k, v in fields.items()}


def _validation_error(message: str) -> MutationResult:
    return MutationResult(ok=False, error=message, error_kind="validation")


def _not_found(dealer_id: Any) -> MutationResult:
    return MutationResult(
        ok=False, error=f"Dealer {dealer_id} not found.", error_kind="not_found"
    )


def _local_payload_list(payload: Any, key: str) -> list[dict[str, Any]] | None:
    if isinstance(payload, dict):
        payload = payload.get(key)
    if not isinstance(payload, list):
        return None
    return [r for r in payload if isinstance(r, dict)]


class DealerDirectoryStore:
    """Authoritative in-memory dealer directory for one session."""

    def __init__(self, backend: DirectoryBackend, fallback: FallbackStore) -> None:
        self._backend = backend
        self._fallback = fallback
        self._dealers: list[DealerRecord] = []
        self._activities: list[ActivityEntry] = []
        self._listeners: list[DirectoryListener] = []
        self.initialized = False

    # ── Read access ────────────────────────────────────────────────

    @property
    def dealers(self) -> tuple[DealerRecord, ...]:
        return tuple(d.copy() for d in self._dealers)

    @property
    def activities(self) -> tuple[ActivityEntry, ...]:
        return tuple(a.copy() for a in self._activities)

    def count(self) -> int:
        return len(self._dealers)

    def _index_of(self, dealer_id: Any) -> int:
        key = as_id(dealer_id)
        for i, dealer in enumerate(self._dealers):
            if dealer.id == key:
                return i
        return -1

    def get_dealer(self, dealer_id: Any) -> DealerRecord | None:
        idx = self._index_of(dealer_id)
        return self._dealers[idx].copy() if idx >= 0 else None

    def dealer_label(self, dealer_id: Any) -> str:
        """Dealer name for display; dangling references get a placeholder."""
        idx = self._index_of(dealer_id)
        if idx >= 0:
            return self._dealers[idx].name
        return f"Dealer #{as_id(dealer_id) or '?'}"

    def filter_dealers(self, query: str | None = None) -> list[DealerRecord]:
        """Case-insensitive substring search over the searchable dealer fields."""
        if not query:
            return [d.copy() for d in self._dealers]
        needle = query.lower()
        return [d.copy() for d in self._dealers if needle in d.search_text()]

    def list_activities(
        self,
        *,
        dealer_id: Any = None,
        limit: int = DEFAULT_ACTIVITY_LIMIT,
    ) -> list[ActivityEntry]:
        """Most recent first, optionally for a single dealer."""
        key = as_id(dealer_id)
        entries = [a for a in self._activities if key is None or a.dealer_id == key]
        return [a.copy() for a in entries[:limit]]

    # ── Listeners ──────────────────────────────────────────────────

    def add_listener(self, listener: DirectoryListener) -> None:
        """Register a callback fired as ``listener(event, record)`` after writes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: DirectoryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: str, record: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, record)
            except Exception:
                logger.exception("Directory listener failed for %s", event)

    # ── Local fallback ─────────────────────────────────────────────

    def _mirror(self, slot: str, payload: list[dict[str, Any]]) -> bool:
        try:
            self._fallback.save(slot, payload)
        except Exception:
            logger.exception("Could not write local fallback slot %s", slot)
            return False
        return True

    def _load_local(self, slot: str) -> list[dict[str, Any]] | None:
        try:
            payload = self._fallback.load(slot)
        except Exception:
            logger.exception("Could not read local fallback slot %s", slot)
            return None
        return _local_payload_list(payload, slot)

    # ── Initialize ─────────────────────────────────────────────────

    async def initialize(self) -> InitializeResult:
        """Load dealers and activities, falling back to the local copies."""
        result = InitializeResult()
        result.dealers_source = await self._load_dealers(result.errors)
        result.activities_source = await self._load_activities(result.errors)
        self.initialized = True
        return result

    def _normalize_dealers(self, raw_records: list[dict[str, Any]]) -> list[DealerRecord]:
        stamp = next_timestamp()
        seen: set[str] = set()
        records: list[DealerRecord] = []
        for raw in raw_records:
            record = DealerRecord.from_payload(raw, now=stamp)
            if record.id in seen:
                duplicate = record.id
                record.id = new_dealer_id()
                logger.warning("Duplicate dealer id %s reassigned to %s", duplicate, record.id)
            seen.add(record.id)
            records.append(record)
        return records

    async def _load_dealers(self, errors: list[str]) -> str:
        try:
            raw = await self._backend.fetch_dealers()
        except DirectoryClientError as exc:
            logger.warning("Failed to load dealers from server (%s): %s", exc.code, exc)
            errors.append(f"Failed to load dealers: {exc}")
        else:
            self._dealers = self._normalize_dealers(raw)
            logger.info("Loaded %d dealers from server", len(self._dealers))
            self._mirror(DEALERS_SLOT, [d.to_payload() for d in self._dealers])
            return "remote"

        local = self._load_local(DEALERS_SLOT)
        if local is None:
            self._dealers = []
            return "empty"
        self._dealers = self._normalize_dealers(local)
        logger.info("Loaded %d dealers from local fallback", len(self._dealers))
        return "local"

    async def _load_activities(self, errors: list[str]) -> str:
        try:
            raw = await self._backend.fetch_activities()
        except DirectoryClientError as exc:
            logger.warning("Failed to load activities from server (%s): %s", exc.code, exc)
            errors.append(f"Failed to load activities: {exc}")
        else:
            self._activities = [ActivityEntry.from_payload(r) for r in raw]
            self._mirror(ACTIVITIES_SLOT, [a.to_payload() for a in self._activities])
            return "remote"

        local = self._load_local(ACTIVITIES_SLOT)
        if local is None:
            self._activities = []
            return "empty"
        self._activities = [ActivityEntry.from_payload(r) for r in local]
        return "local"

    # ── Persist ────────────────────────────────────────────────────

    async def persist(self) -> PersistResult:
        """Write the whole collection remotely and mirror it locally."""
        payloads = [d.to_payload() for d in self._dealers]
        remote_saved = False
        error = ""
        try:
            await self._backend.save_dealers(
                payloads, last_updated=now_utc().date().isoformat()
            )
            remote_saved = True
        except DirectoryClientError as exc:
            logger.warning("Could not save dealers to server, keeping local copy: %s", exc)
            error = str(exc)
        local_saved = self._mirror(DEALERS_SLOT, payloads)
        return PersistResult(remote_saved=remote_saved, local_saved=local_saved, error=error)

    async def _finish_write(self, event: str, record: DealerRecord) -> MutationResult:
        persisted = await self.persist()
        if not persisted.ok:
            return MutationResult(
                ok=False,
                record=record.copy(),
                error=f"Change kept in memory only: {persisted.error}",
                error_kind="persist",
            )
        self._notify(event, record.copy())
        return MutationResult(
            ok=True,
            record=record.copy(),
            saved_locally=not persisted.remote_saved,
        )

    # ── Dealers ────────────────────────────────────────────────────

    async def add_dealer(self, fields: dict[str, Any]) -> MutationResult:
        """Create a dealer with a fresh id and timestamps, then persist."""
        if not isinstance(fields, dict):
            return _validation_error("Dealer fields must be an object.")
        entry = blank_to_none(_canonical_keys(fields, _DEALER_ALIASES))

        status = DEFAULT_STATUS
        if entry.get("status") is not None:
            status = normalize_status(entry["status"])
            if status is None:
                return _validation_error(
                    f"status must be one of: {', '.join(DEALER_STATUSES)}."
                )

        dealer_id = new_dealer_id()
        while self._index_of(dealer_id) >= 0:
            dealer_id = new_dealer_id()
        stamp = next_timestamp()
        record = DealerRecord(
            id=dealer_id,
            name=str(entry.get("name") or NEW_DEALER),
            address=as_optional_text(entry.get("address")),
            phone=as_optional_text(entry.get("phone")),
            email=as_optional_text(entry.get("email")),
            website=as_optional_text(entry.get("website")),
            contact_person=as_optional_text(entry.get("contactPerson")),
            last_contact=as_optional_text(entry.get("lastContact")),
            status=status,
            notes=as_optional_text(entry.get("notes")),
            created_at=stamp,
            updated_at=stamp,
            extras={
                k: v for k, v in entry.items()
                if k not in DEALER_KEYS and k not in _BOOKKEEPING_KEYS
            },
        )
        self._dealers.append(record)
        return await self._finish_write("dealer_added", record)

    async def update_dealer(self, dealer_id: Any, updates: dict[str, Any]) -> MutationResult:
        """Merge ``updates`` into an existing dealer, then persist.

        ``id`` and the bookkeeping timestamps can't be overwritten and a blank
        ``name`` keeps the current one.  Setting ``lastContact`` on a dealer
        still at the default status promotes it to ``Contacted`` unless the
        update also sets a status.
        """
        idx = self._index_of(dealer_id)
        if idx < 0:
            return _not_found(dealer_id)
        if not isinstance(updates, dict):
            return _validation_error("Dealer updates must be an object.")
        changes = _canonical_keys(updates, _DEALER_ALIASES)

        status_given = not is_blank(changes.get("status"))
        new_status = None
        if status_given:
            new_status = normalize_status(changes["status"])
            if new_status is None:
                return _validation_error(
                    f"status must be one of: {', '.join(DEALER_STATUSES)}."
                )

        record = self._dealers[idx].copy()
        if not is_blank(changes.get("name")):
            record.name = str(changes["name"])
        for key in _DEALER_TEXT_FIELDS:
            if key in changes:
                value = changes[key]
                setattr(record, DEALER_KEYS[key], None if value is None else str(value))
        if "lastContact" in changes:
            record.last_contact = as_optional_text(changes["lastContact"])
        if new_status is not None:
            record.status = new_status
        elif (
            "lastContact" in changes
            and record.last_contact is not None
            and record.status == DEFAULT_STATUS
        ):
            record.status = CONTACTED_STATUS
        for key, value in changes.items():
            if key not in DEALER_KEYS and key not in _BOOKKEEPING_KEYS:
                record.extras[key] = value
        record.updated_at = next_timestamp(record.updated_at)

        self._dealers[idx] = record
        return await self._finish_write("dealer_updated", record)

    async def remove_dealer(self, dealer_id: Any) -> MutationResult:
        """Delete a dealer.  Activities that reference it are kept."""
        idx = self._index_of(dealer_id)
        if idx < 0:
            return _not_found(dealer_id)
        record = self._dealers.pop(idx)
        return await self._finish_write("dealer_removed", record)

    # ── Activities ─────────────────────────────────────────────────

    async def add_activity(self, fields: dict[str, Any]) -> MutationResult:
        """Validate and log an activity, newest first.

        Falls back to a locally built entry (``saved_locally=True``) when the
        remote append fails.  Invalid input never reaches the backend.
        """
        if not isinstance(fields, dict):
            return _validation_error("Activity fields must be an object.")
        entry = _canonical_keys(fields, _ACTIVITY_ALIASES)
        for required in ACTIVITY_REQUIRED_FIELDS:
            if is_blank(entry.get(required)):
                return _validation_error(f"{required} is required.")
        activity_type = normalize_activity_type(entry["type"])
        if activity_type is None:
            return _validation_error(
                f"type must be one of: {', '.join(sorted(ACTIVITY_TYPES))}."
            )

        payload: dict[str, Any] = {
            k: v for k, v in entry.items()
            if k not in ACTIVITY_KEYS and k not in _BOOKKEEPING_KEYS
        }
        payload.update({
            "dealerId": as_id(entry["dealerId"]),
            "date": str(entry["date"]),
            "type": activity_type,
            "notes": str(entry["notes"]),
            "followUpDate": as_optional_text(entry.get("followUpDate")),
            "statusUpdate": as_optional_text(entry.get("statusUpdate")),
        })

        saved_locally = False
        try:
            stored = await self._backend.post_activity(payload)
            activity = ActivityEntry.from_payload(stored or payload)
        except DirectoryClientError as exc:
            logger.warning("Activity saved locally, server unavailable: %s", exc)
            activity = ActivityEntry.from_payload(payload)
            saved_locally = True

        self._activities.insert(0, activity)
        self._mirror(ACTIVITIES_SLOT, [a.to_payload() for a in self._activities])
        self._notify("activity_added", activity.copy())
        return MutationResult(ok=True, record=activity.copy(), saved_locally=saved_locally)
