"""Dealer directory tool implementations: store calls in, plain text out."""

from __future__ import annotations

from typing import Any

from outreach_mcp.data.directory import (
    DealerDirectoryStore,
    InitializeResult,
    MutationResult,
)
from outreach_mcp.data.records import DealerRecord
from outreach_mcp.tools.rendering import (
    build_raw_response,
    contact_recency,
    days_since,
    format_activity,
    format_dealer,
    parse_day,
    relative_date,
)


def _saved_suffix(result: MutationResult) -> str:
    if result.saved_locally:
        return " Saved locally (server offline)."
    return ""


async def initialize_directory_impl(
    store: DealerDirectoryStore,
    *,
    preloaded: InitializeResult | None = None,
) -> str:
    """Reload dealers and activities from the server (or the local fallback).

    ``preloaded`` is a load that just happened; it is reported instead of
    loading a second time.
    """
    result = preloaded or await store.initialize()
    lines = [
        f"Loaded {store.count()} dealer(s) from {result.dealers_source} "
        f"and {len(store.activities)} activity entries from {result.activities_source}."
    ]
    lines.extend(f"Warning: {err}" for err in result.errors)
    return "\n".join(lines)


SEARCH_SORTS = ("", "recent_contact")


def sort_by_recent_contact(dealers: list[DealerRecord]) -> list[DealerRecord]:
    """Most recent last contact first; dealers never contacted go last."""
    dated = [(parse_day(d.last_contact), d) for d in dealers]
    contacted = sorted((p for p in dated if p[0] is not None), key=lambda p: p[0], reverse=True)
    return [d for _, d in contacted] + [d for day, d in dated if day is None]


def _recency_payload(dealer: DealerRecord) -> dict[str, Any]:
    days = days_since(dealer.last_contact)
    return {
        **dealer.to_payload(),
        "daysSinceContact": days,
        "lastContactRelative": relative_date(dealer.last_contact),
        "contactRecency": contact_recency(days),
    }


def search_dealers_impl(
    store: DealerDirectoryStore,
    *,
    query: str = "",
    limit: int = 25,
    sort: str = "",
    raw: bool = False,
) -> str:
    """Search dealers by name, address, contact, phone, email, status or notes.

    ``sort="recent_contact"`` orders by most recent last contact; the default
    keeps directory order.
    """
    if limit <= 0:
        return "Limit must be greater than 0."
    if limit > 500:
        return "Limit must be 500 or fewer."
    sort = sort.strip().lower()
    if sort not in SEARCH_SORTS:
        return "Sort must be empty or 'recent_contact'."

    matches = store.filter_dealers(query.strip() or None)
    if sort == "recent_contact":
        matches = sort_by_recent_contact(matches)
    shown = matches[:limit]
    if raw:
        return build_raw_response(
            "search_dealers",
            {
                "query": query,
                "sort": sort or "directory",
                "total": len(matches),
                "dealers": [_recency_payload(d) for d in shown],
            },
        )
    if not matches:
        if query.strip():
            return f"No dealers match '{query.strip()}'."
        return "No dealers found. Add one to get started."

    header = f"{len(matches)} dealer(s)"
    if query.strip():
        header += f" matching '{query.strip()}'"
    if sort:
        header += " by most recent contact"
    if len(shown) < len(matches):
        header += f" (showing {len(shown)})"
    return "\n\n".join([header + ":"] + [format_dealer(d) for d in shown])


def get_dealer_impl(store: DealerDirectoryStore, *, dealer_id: str, raw: bool = False) -> str:
    """Show one dealer with its recent activity."""
    if not dealer_id or not dealer_id.strip():
        return "Error: dealer_id is required."
    dealer = store.get_dealer(dealer_id.strip())
    if dealer is None:
        return f"Dealer {dealer_id} not found."

    activities = store.list_activities(dealer_id=dealer.id, limit=10)
    if raw:
        return build_raw_response(
            "get_dealer",
            {
                "dealer": dealer.to_payload(),
                "activities": [a.to_payload() for a in activities],
            },
        )
    text = format_dealer(dealer)
    if activities:
        text += "\n\nRecent activity:\n" + "\n".join(
            format_activity(a, dealer.name) for a in activities
        )
    return text


async def add_dealer_impl(store: DealerDirectoryStore, dealer: Any) -> str:
    """Add a dealer. Empty fields are stored as absent."""
    if not isinstance(dealer, dict):
        return "Error: dealer payload must be a dict."
    result = await store.add_dealer(dealer)
    if not result.ok:
        return f"Error: {result.error}"
    record = result.record
    return f"Dealer {record.name} added with id {record.id}.{_saved_suffix(result)}"


async def update_dealer_impl(
    store: DealerDirectoryStore,
    *,
    dealer_id: str,
    updates: Any,
) -> str:
    """Merge partial updates into a dealer."""
    if not dealer_id or not dealer_id.strip():
        return "Error: dealer_id is required."
    if not isinstance(updates, dict) or not updates:
        return "Error: updates must be a non-empty dict."
    result = await store.update_dealer(dealer_id.strip(), updates)
    if not result.ok:
        if result.error_kind == "not_found":
            return f"Dealer {dealer_id} not found. Nothing to update."
        return f"Error: {result.error}"
    record = result.record
    return (
        f"Dealer {record.id} updated (status: {record.status})."
        f"{_saved_suffix(result)}"
    )


async def remove_dealer_impl(store: DealerDirectoryStore, *, dealer_id: str) -> str:
    """Remove a dealer by ID. Logged activities are kept."""
    if not dealer_id or not dealer_id.strip():
        return "Error: dealer_id is required."
    result = await store.remove_dealer(dealer_id.strip())
    if not result.ok:
        if result.error_kind == "not_found":
            return f"Dealer {dealer_id} not found. Nothing to remove."
        return f"Error: {result.error}"
    return f"Dealer {dealer_id} removed successfully.{_saved_suffix(result)}"


async def sync_dealers_impl(store: DealerDirectoryStore) -> str:
    """Push the full dealer collection to the server."""
    result = await store.persist()
    if result.remote_saved:
        return f"Saved {store.count()} dealer(s) to the server."
    if result.local_saved:
        return (
            f"Server unavailable; {store.count()} dealer(s) saved locally. "
            f"({result.error})"
        )
    return f"Error: dealers could not be saved ({result.error})."
