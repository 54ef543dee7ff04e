"""Async client for the remote dealer directory JSON resource."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from outreach_mcp.config import DEFAULT_REQUEST_TIMEOUT, OutreachConfig

logger = logging.getLogger(__name__)

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class DirectoryClientError(RuntimeError):
    """Raised for directory request failures with structured metadata.

    ``code`` is one of ``NETWORK_ERROR``, ``TIMEOUT``, ``HTTP_ERROR`` or
    ``MALFORMED_RESPONSE``.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details or {}


def _extract_list(payload: Any, key: str) -> list[dict[str, Any]]:
    """Accept a bare list or ``{key: [...]}``; anything else is malformed."""
    items = payload if isinstance(payload, list) else None
    if items is None and isinstance(payload, dict):
        candidate = payload.get(key)
        if isinstance(candidate, list):
            items = candidate
    if items is None:
        raise DirectoryClientError(
            f"Expected a list or an object with a '{key}' list.",
            code="MALFORMED_RESPONSE",
            details={"type": type(payload).__name__},
        )
    return [r for r in items if isinstance(r, dict)]


class DirectoryClient:
    """Async client for the dealer and activity endpoints.

    Use as ``async with DirectoryClient(base_url) as client: ...``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        dealers_path: str = "/data/dealers.json",
        save_dealers_path: str = "/api/save-dealers",
        activities_path: str = "/api/activities",
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.dealers_path = dealers_path
        self.save_dealers_path = save_dealers_path
        self.activities_path = activities_path
        self.session: aiohttp.ClientSession | None = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @classmethod
    def from_config(cls, config: OutreachConfig) -> DirectoryClient:
        return cls(
            config.base_url,
            dealers_path=config.dealers_path,
            save_dealers_path=config.save_dealers_path,
            activities_path=config.activities_path,
            timeout=config.request_timeout,
        )

    async def __aenter__(self) -> DirectoryClient:
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(headers=_NO_CACHE_HEADERS)

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        retry: bool = False,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        GETs pass ``retry=True`` for one retry on 5xx or transport errors;
        writes are never retried.
        """
        if not self.session:
            raise RuntimeError("Client not entered as context manager")

        url = f"{self.base_url}{path}"
        attempts = 2 if retry else 1
        for attempt in range(attempts):
            last_try = attempt == attempts - 1
            try:
                async with self.session.request(
                    method,
                    url,
                    json=body,
                    timeout=self._timeout,
                ) as resp:
                    if resp.status >= 500 and not last_try:
                        continue
                    raw_body = await resp.read()
                    if resp.status >= 400:
                        raise DirectoryClientError(
                            f"{method} {path} failed with HTTP {resp.status}.",
                            code="HTTP_ERROR",
                            status=resp.status,
                            details={
                                "path": path,
                                "response": raw_body[:500].decode("utf-8", "replace"),
                            },
                        )
                    if not raw_body.strip():
                        return None
                    try:
                        return json.loads(raw_body.decode("utf-8"))
                    except UnicodeDecodeError as exc:
                        raise DirectoryClientError(
                            f"{method} {path} returned a body that is not UTF-8.",
                            code="MALFORMED_RESPONSE",
                            status=resp.status,
                            details={"path": path},
                        ) from exc
                    except json.JSONDecodeError as exc:
                        raise DirectoryClientError(
                            f"{method} {path} returned a non-JSON body.",
                            code="MALFORMED_RESPONSE",
                            status=resp.status,
                            details={"path": path},
                        ) from exc
            except DirectoryClientError:
                raise
            except TimeoutError as exc:
                if not last_try:
                    continue
                raise DirectoryClientError(
                    f"{method} {path} timed out.",
                    code="TIMEOUT",
                    details={"path": path},
                ) from exc
            except aiohttp.ClientError as exc:
                if not last_try:
                    continue
                logger.error("Directory client error (%s %s): %s", method, path, exc)
                raise DirectoryClientError(
                    f"{method} {path} failed due to a network/client error.",
                    code="NETWORK_ERROR",
                    details={"path": path, "error": str(exc)},
                ) from exc

        raise RuntimeError("unreachable")  # pragma: no cover

    # ── Dealers ─────────────────────────────────────────────────────

    async def fetch_dealers(self) -> list[dict[str, Any]]:
        """Load the raw dealer collection (bare list or ``{"dealers": [...]}``)."""
        data = await self._request("GET", self.dealers_path, retry=True)
        return _extract_list(data, "dealers")

    async def save_dealers(
        self,
        dealers: list[dict[str, Any]],
        *,
        last_updated: str | None = None,
    ) -> Any:
        """Replace the whole remote collection."""
        body: dict[str, Any] = {"dealers": dealers}
        if last_updated:
            body = {"lastUpdated": last_updated, **body}
        return await self._request("POST", self.save_dealers_path, body=body)

    # ── Activities ──────────────────────────────────────────────────

    async def fetch_activities(self) -> list[dict[str, Any]]:
        """Load the raw activity log, most recent first."""
        data = await self._request("GET", self.activities_path, retry=True)
        return _extract_list(data, "activities")

    async def post_activity(self, activity: dict[str, Any]) -> dict[str, Any] | None:
        """Append one activity; returns the stored activity echoed by the server."""
        data = await self._request("POST", self.activities_path, body=activity)
        if isinstance(data, dict) and isinstance(data.get("activity"), dict):
            return data["activity"]
        return None
