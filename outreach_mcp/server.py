"""Dealer outreach MCP server — FastMCP entry point for the directory tools."""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from outreach_mcp.config import load_env_file
from outreach_mcp.data.session import get_store, take_startup_result
from outreach_mcp.tools.activities import (
    directory_reference,
    list_activities_impl,
    log_activity_impl,
)
from outreach_mcp.tools.dealers import (
    add_dealer_impl,
    get_dealer_impl,
    initialize_directory_impl,
    remove_dealer_impl,
    search_dealers_impl,
    sync_dealers_impl,
    update_dealer_impl,
)

load_env_file()

mcp = FastMCP("DealerOutreach")
logger = logging.getLogger(__name__)


def _tool_error(*, tool_name: str, exc: Exception, user_message: str) -> str:
    """Log an unexpected tool failure and return a message safe to show."""
    logger.exception("Tool %s failed: %s", tool_name, exc)
    return user_message


@mcp.resource("outreach://dealers/statuses")
def directory_reference_resource() -> dict[str, Any]:
    """Dealer statuses and activity types accepted by the directory."""
    return directory_reference()


@mcp.tool()
async def initialize_directory() -> str:
    """Reload the dealer directory and activity log from the server."""
    try:
        store = await get_store()
        return await initialize_directory_impl(store, preloaded=take_startup_result())
    except Exception as exc:
        return _tool_error(
            tool_name="initialize_directory",
            exc=exc,
            user_message=(
                "I am having trouble loading the dealer directory right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def search_dealers(
    query: str = "", limit: int = 25, sort: str = "", raw: bool = False
) -> str:
    """Search dealers by name, address, contact person, phone, email, status or notes.

    An empty query lists every dealer. Use sort="recent_contact" to put the most
    recently contacted dealers first; each entry shows how long ago that was.
    """
    try:
        store = await get_store()
        return search_dealers_impl(store, query=query, limit=limit, sort=sort, raw=raw)
    except Exception as exc:
        return _tool_error(
            tool_name="search_dealers",
            exc=exc,
            user_message=(
                "I am having trouble searching dealers right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def get_dealer(dealer_id: str, raw: bool = False) -> str:
    """Show a single dealer and its recent activity."""
    try:
        store = await get_store()
        return get_dealer_impl(store, dealer_id=dealer_id, raw=raw)
    except Exception as exc:
        return _tool_error(
            tool_name="get_dealer",
            exc=exc,
            user_message=(
                "I am having trouble retrieving that dealer right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def add_dealer(dealer: dict) -> str:
    """Add a dealer. Fields: name, address, phone, email, website, contactPerson,
    lastContact, status, notes. The id and timestamps are assigned automatically."""
    try:
        store = await get_store()
        return await add_dealer_impl(store, dealer)
    except Exception as exc:
        return _tool_error(
            tool_name="add_dealer",
            exc=exc,
            user_message=(
                "I am having trouble saving that dealer right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def update_dealer(dealer_id: str, updates: dict) -> str:
    """Update some fields of a dealer. Setting lastContact on a dealer that is
    still 'Not Contacted' marks it 'Contacted' unless a status is also given."""
    try:
        store = await get_store()
        return await update_dealer_impl(store, dealer_id=dealer_id, updates=updates)
    except Exception as exc:
        return _tool_error(
            tool_name="update_dealer",
            exc=exc,
            user_message=(
                "I am having trouble updating that dealer right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def remove_dealer(dealer_id: str) -> str:
    """Remove a dealer from the directory. Its logged activities are kept."""
    try:
        store = await get_store()
        return await remove_dealer_impl(store, dealer_id=dealer_id)
    except Exception as exc:
        return _tool_error(
            tool_name="remove_dealer",
            exc=exc,
            user_message=(
                "I am having trouble removing that dealer right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def log_activity(activity: dict) -> str:
    """Log an outreach activity. Required: dealerId, date, type (call, email,
    meeting, test_drive, follow_up, other), notes. Optional: followUpDate,
    statusUpdate."""
    try:
        store = await get_store()
        return await log_activity_impl(store, activity)
    except Exception as exc:
        return _tool_error(
            tool_name="log_activity",
            exc=exc,
            user_message=(
                "I am having trouble logging that activity right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def list_activities(dealer_id: str = "", limit: int = 50, raw: bool = False) -> str:
    """Show the outreach activity log, most recent first, optionally for one dealer."""
    try:
        store = await get_store()
        return list_activities_impl(store, dealer_id=dealer_id, limit=limit, raw=raw)
    except Exception as exc:
        return _tool_error(
            tool_name="list_activities",
            exc=exc,
            user_message=(
                "I am having trouble retrieving the activity log right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def sync_dealers() -> str:
    """Save the full dealer collection to the server (local copy if it is offline)."""
    try:
        store = await get_store()
        return await sync_dealers_impl(store)
    except Exception as exc:
        return _tool_error(
            tool_name="sync_dealers",
            exc=exc,
            user_message=(
                "I am having trouble saving the directory right now. "
                "Please try again in a moment."
            ),
        )


if __name__ == "__main__":
    mcp.run()
