"""Shared text/JSON rendering for directory tool output."""

from __future__ import annotations

import json
from datetime import date
from typing import Any

from outreach_mcp.constants import ACTIVITY_TYPE_LABELS
from outreach_mcp.data.records import ActivityEntry, DealerRecord
from outreach_mcp.normalization import now_utc, parse_timestamp

RECENT_CONTACT_DAYS = 7
SOMEWHAT_RECENT_CONTACT_DAYS = 30


def build_raw_response(tool_name: str, data: dict[str, Any]) -> str:
    payload = {
        "_raw": True,
        "_tool": tool_name,
        "_meta": {"schema_version": 1},
        "data": data,
    }
    return json.dumps(payload, indent=2, default=str)


def parse_day(value: str | None) -> date | None:
    """Calendar day of a ``YYYY-MM-DD`` date or an ISO timestamp (UTC)."""
    if not value:
        return None
    text = value.strip()
    if len(text) == 10:
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    dt = parse_timestamp(text)
    return dt.date() if dt else None


def format_date(value: str | None) -> str:
    """``2024-01-05`` → ``Jan 5, 2024``; datetimes also get the clock time."""
    if not value:
        return ""
    text = value.strip()
    if len(text) == 10:
        d = parse_day(text)
        if d is None:
            return text
        return f"{d:%b} {d.day}, {d.year}"
    dt = parse_timestamp(text)
    if dt is None:
        return text
    return f"{dt:%b} {dt.day}, {dt.year}, {dt:%I:%M %p}"


def days_since(value: str | None, today: date | None = None) -> int | None:
    """Whole days between ``value`` and today; ``None`` when absent or unparseable."""
    day = parse_day(value)
    if day is None:
        return None
    return ((today or now_utc().date()) - day).days


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''} ago"


def relative_date(value: str | None, today: date | None = None) -> str:
    """``Today``, ``Yesterday``, ``3 days ago``, ``2 weeks ago`` and so on."""
    if not value:
        return "No contact date"
    days = days_since(value, today)
    if days is None:
        return "N/A"
    if days <= 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        return _plural(days // 7, "week")
    if days < 365:
        return _plural(days // 30, "month")
    return _plural(days // 365, "year")


def contact_recency(days: int | None) -> str:
    """Bucket a days-since-contact count: recent, somewhat-recent or not-recent."""
    if days is None:
        return "not-recent"
    if days <= RECENT_CONTACT_DAYS:
        return "recent"
    if days <= SOMEWHAT_RECENT_CONTACT_DAYS:
        return "somewhat-recent"
    return "not-recent"


def activity_type_label(activity_type: str) -> str:
    return ACTIVITY_TYPE_LABELS.get(activity_type, activity_type)


def format_dealer(dealer: DealerRecord, today: date | None = None) -> str:
    lines = [f"{dealer.name} [{dealer.id}] - {dealer.status}"]
    if dealer.contact_person:
        lines.append(f"  Contact: {dealer.contact_person}")
    if dealer.phone:
        lines.append(f"  Phone: {dealer.phone}")
    if dealer.email:
        lines.append(f"  Email: {dealer.email}")
    if dealer.website:
        site = dealer.website
        lines.append(f"  Website: {site if site.startswith('http') else 'https://' + site}")
    if dealer.address:
        lines.append(f"  Address: {dealer.address.replace(chr(10), ', ')}")
    if dealer.last_contact:
        days = days_since(dealer.last_contact, today)
        lines.append(
            f"  Last contact: {format_date(dealer.last_contact)} "
            f"({relative_date(dealer.last_contact, today)}, {contact_recency(days)})"
        )
    else:
        lines.append("  Last contact: No contact date")
    if dealer.notes:
        lines.append(f"  Notes: {dealer.notes}")
    return "\n".join(lines)


def format_activity(activity: ActivityEntry, dealer_label: str) -> str:
    when = format_date(activity.date) or format_date(activity.created_at.isoformat())
    head = f"{when} · {dealer_label} · {activity_type_label(activity.type)}"
    if activity.status_update:
        head += f" ({activity.status_update})"
    lines = [head, f"  {activity.notes}"]
    if activity.follow_up_date:
        lines.append(f"  Follow up on {format_date(activity.follow_up_date)}")
    return "\n".join(lines)
