"""Shared external API clients."""

from outreach_mcp.clients.directory import DirectoryClient, DirectoryClientError

__all__ = [
    "DirectoryClient",
    "DirectoryClientError",
]
