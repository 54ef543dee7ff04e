"""Shared constants used across the store, the API service and the tool modules.

Single source of truth for status labels, activity types and fallback slots.
"""

from __future__ import annotations

DEFAULT_STATUS = "Not Contacted"
CONTACTED_STATUS = "Contacted"

DEALER_STATUSES: tuple[str, ...] = (
    DEFAULT_STATUS,
    CONTACTED_STATUS,
    "Follow Up",
    "Scheduled",
    "Declined",
    "Sold",
)

ACTIVITY_TYPE_LABELS: dict[str, str] = {
    "call": "Phone Call",
    "email": "Email",
    "meeting": "Meeting",
    "test_drive": "Test Drive",
    "follow_up": "Follow Up",
    "other": "Other",
}
ACTIVITY_TYPES: frozenset[str] = frozenset(ACTIVITY_TYPE_LABELS)

# Required activity fields, in the order they are checked.
ACTIVITY_REQUIRED_FIELDS: tuple[str, ...] = ("dealerId", "date", "type", "notes")

UNNAMED_DEALER = "Unnamed Dealer"
NEW_DEALER = "New Dealer"

DEALERS_SLOT = "dealers"
ACTIVITIES_SLOT = "activities"

DEFAULT_ACTIVITY_LIMIT = 50
