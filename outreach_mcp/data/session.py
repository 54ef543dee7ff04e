"""Process-wide directory store accessor.

Tool modules call ``await get_store()``; tests inject their own store with
``set_store``.
"""

from __future__ import annotations

import asyncio
import logging

from outreach_mcp.clients.directory import DirectoryClient
from outreach_mcp.config import OutreachConfig
from outreach_mcp.data.directory import DealerDirectoryStore, InitializeResult
from outreach_mcp.data.fallback import MemoryFallbackStore, SqliteFallbackStore

logger = logging.getLogger(__name__)

_store: DealerDirectoryStore | None = None
_client: DirectoryClient | None = None
_last_init: InitializeResult | None = None
_unreported_init: InitializeResult | None = None
_store_lock = asyncio.Lock()


async def build_store(config: OutreachConfig) -> tuple[DealerDirectoryStore, DirectoryClient]:
    """Wire a store to an opened client and the configured fallback store."""
    client = DirectoryClient.from_config(config)
    await client.open()
    if config.fallback_db == ":memory:":
        fallback = MemoryFallbackStore()
    else:
        fallback = SqliteFallbackStore(config.fallback_db)
    return DealerDirectoryStore(client, fallback), client


async def get_store() -> DealerDirectoryStore:
    """Return the active store, creating and initializing it on first use.

    Concurrent first callers wait on one lock and share the same store.
    """
    global _store, _client, _last_init, _unreported_init  # noqa: PLW0603
    if _store is not None:
        return _store
    async with _store_lock:
        if _store is None:
            config = OutreachConfig.from_env()
            store, client = await build_store(config)
            _last_init = await store.initialize()
            if _last_init.errors:
                logger.warning("Directory started degraded: %s", "; ".join(_last_init.errors))
            _store, _client = store, client
            _unreported_init = _last_init
    return _store


def last_initialize_result() -> InitializeResult | None:
    return _last_init


def take_startup_result() -> InitializeResult | None:
    """Hand out the load done by ``get_store`` once, so it is not repeated."""
    global _unreported_init  # noqa: PLW0603
    result, _unreported_init = _unreported_init, None
    return result


def set_store(store: DealerDirectoryStore | None) -> None:
    """Inject a store instance for testing."""
    global _store, _client, _last_init, _unreported_init, _store_lock  # noqa: PLW0603
    _store = store
    _client = None
    _last_init = None
    _unreported_init = None
    # asyncio.Lock binds to the loop that first waits on it.
    _store_lock = asyncio.Lock()


async def close_store() -> None:
    """Close the HTTP session behind the active store, if this module opened it."""
    global _store, _client, _unreported_init  # noqa: PLW0603
    if _client is not None:
        await _client.close()
    _store = None
    _client = None
    _unreported_init = None
