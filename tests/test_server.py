"""Server integration tests — MCP tool wrappers over an injected store."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fakes import FakeBackend

import outreach_mcp.server as server_mod
from outreach_mcp.data.directory import DealerDirectoryStore
from outreach_mcp.data.fallback import MemoryFallbackStore
from outreach_mcp.data.session import set_store
from outreach_mcp.server import (
    add_dealer,
    directory_reference_resource,
    get_dealer,
    initialize_directory,
    list_activities,
    log_activity,
    remove_dealer,
    search_dealers,
    sync_dealers,
    update_dealer,
)


@pytest.fixture()
async def injected() -> FakeBackend:
    backend = FakeBackend(dealers=[{"id": "d1", "name": "Acme Motors"}])
    store = DealerDirectoryStore(backend, MemoryFallbackStore())
    await store.initialize()
    set_store(store)
    return backend


# ── MCP tool wrapper tests ──────────────────────────────────────


class TestMCPToolWrappers:
    """Verify that MCP-registered functions return strings and work end-to-end."""

    async def test_search_dealers(self, injected):
        result = await search_dealers(query="acme")
        assert "Acme Motors" in result

    async def test_get_dealer(self, injected):
        assert "Acme Motors" in await get_dealer(dealer_id="d1")

    async def test_crud_flow(self, injected: FakeBackend):
        added = await add_dealer(dealer={"name": "Bell Auto"})
        assert "added with id" in added
        dealer_id = added.rsplit(" ", 1)[-1].rstrip(".")

        updated = await update_dealer(dealer_id=dealer_id, updates={"status": "Scheduled"})
        assert "Scheduled" in updated

        logged = await log_activity(
            activity={"dealerId": dealer_id, "date": "2024-01-01", "type": "meeting",
                      "notes": "Lunch"}
        )
        assert logged == "Activity for Bell Auto saved."
        assert "Bell Auto" in await list_activities(dealer_id=dealer_id)

        assert "removed" in await remove_dealer(dealer_id=dealer_id)
        assert "Saved 1 dealer(s)" in await sync_dealers()

    async def test_initialize_directory(self, injected):
        result = await initialize_directory()
        assert result.startswith("Loaded 1 dealer(s) from remote")

    def test_reference_resource(self):
        assert "Sold" in directory_reference_resource()["statuses"]


class TestErrorHandling:
    async def test_unexpected_error_returns_friendly_message(self):
        with patch.object(server_mod, "get_store", AsyncMock(side_effect=RuntimeError("boom"))):
            result = await search_dealers(query="x")
        assert "trouble searching dealers" in result

    async def test_unexpected_error_is_logged(self, caplog):
        with patch.object(server_mod, "get_store", AsyncMock(side_effect=RuntimeError("boom"))):
            await add_dealer(dealer={"name": "x"})
        assert any("add_dealer" in r.getMessage() for r in caplog.records)
