"""Activity log tool implementations."""

from __future__ import annotations

from typing import Any

from outreach_mcp.constants import ACTIVITY_TYPE_LABELS, DEALER_STATUSES
from outreach_mcp.data.directory import DealerDirectoryStore
from outreach_mcp.tools.rendering import build_raw_response, format_activity


async def log_activity_impl(store: DealerDirectoryStore, activity: Any) -> str:
    """Log a call, email, meeting or other touchpoint against a dealer."""
    if not isinstance(activity, dict):
        return "Error: activity payload must be a dict."
    result = await store.add_activity(activity)
    if not result.ok:
        return f"Error: {result.error}"
    entry = result.record
    label = store.dealer_label(entry.dealer_id)
    if result.saved_locally:
        return f"Activity for {label} saved locally (server offline)."
    return f"Activity for {label} saved."


def list_activities_impl(
    store: DealerDirectoryStore,
    *,
    dealer_id: str = "",
    limit: int = 50,
    raw: bool = False,
) -> str:
    """Show the activity log, most recent first."""
    if limit <= 0:
        return "Limit must be greater than 0."
    if limit > 200:
        return "Limit must be 200 or fewer."

    entries = store.list_activities(dealer_id=dealer_id.strip() or None, limit=limit)
    if raw:
        return build_raw_response(
            "list_activities",
            {
                "dealer_id": dealer_id,
                "activity_count": len(entries),
                "activities": [
                    {**a.to_payload(), "dealerName": store.dealer_label(a.dealer_id)}
                    for a in entries
                ],
            },
        )
    if not entries:
        return "No activities yet."
    return "\n\n".join(format_activity(a, store.dealer_label(a.dealer_id)) for a in entries)


def directory_reference() -> dict[str, Any]:
    """Static vocabulary for clients building forms."""
    return {
        "statuses": list(DEALER_STATUSES),
        "activity_types": dict(ACTIVITY_TYPE_LABELS),
    }
