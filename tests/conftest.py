"""Shared test fixtures for the directory store and session injection."""

from __future__ import annotations

import pytest
from fakes import FakeBackend

from outreach_mcp.data.directory import DealerDirectoryStore
from outreach_mcp.data.fallback import MemoryFallbackStore
from outreach_mcp.data.session import set_store


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def fallback() -> MemoryFallbackStore:
    return MemoryFallbackStore()


@pytest.fixture()
def store(backend: FakeBackend, fallback: MemoryFallbackStore) -> DealerDirectoryStore:
    """A fresh, uninitialized store wired to the fake backend."""
    return DealerDirectoryStore(backend, fallback)


@pytest.fixture(autouse=True)
def _reset_session_store():
    """Never let one test's injected store leak into the next."""
    set_store(None)
    yield
    set_store(None)
