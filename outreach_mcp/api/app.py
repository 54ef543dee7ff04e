"""JSON resource service for the dealer directory.

Serves and stores ``dealers.json`` and ``activities.json`` under a data
directory.  This is the remote end that ``DirectoryClient`` talks to.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable

from aiohttp import web

from outreach_mcp.config import OutreachConfig
from outreach_mcp.constants import ACTIVITY_REQUIRED_FIELDS
from outreach_mcp.data.records import new_activity_id
from outreach_mcp.normalization import (
    as_id,
    format_timestamp,
    is_blank,
    normalize_activity_type,
    now_utc,
)

logger = logging.getLogger(__name__)

DEALERS_FILE = "dealers.json"
ACTIVITIES_FILE = "activities.json"

DATA_DIR_KEY = web.AppKey("data_dir", Path)
WRITE_LOCK_KEY = web.AppKey("write_lock", asyncio.Lock)

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Cache-Control, Pragma",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


# ── File helpers ────────────────────────────────────────────────────


def _read_json(path: Path) -> Any | None:
    if not path.is_file():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("Corrupt JSON in %s: %s", path, exc)
        raise web.HTTPInternalServerError(
            text=json.dumps({"error": f"{path.name} is not valid JSON"}),
            content_type="application/json",
        ) from exc


def _write_json(path: Path, payload: Any) -> None:
    """Write via a temp file + rename so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _json_error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_body(request: web.Request) -> Any:
    try:
        return await request.json()
    except json.JSONDecodeError as exc:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": f"Malformed JSON body: {exc.msg}"}),
            content_type="application/json",
        ) from exc


# ── Middlewares ─────────────────────────────────────────────────────


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=_CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.update(_CORS_HEADERS)
        raise
    response.headers.update(_CORS_HEADERS)
    return response


@web.middleware
async def logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        logger.info("%s %s -> %s", request.method, request.path, exc.status)
        raise
    logger.info("%s %s -> %s", request.method, request.path, response.status)
    return response


# ── Dealers ─────────────────────────────────────────────────────────


async def get_dealers(request: web.Request) -> web.Response:
    data = _read_json(request.app[DATA_DIR_KEY] / DEALERS_FILE)
    if data is None:
        return web.json_response({"lastUpdated": None, "dealers": []})
    if isinstance(data, list):
        data = {"lastUpdated": None, "dealers": data}
    return web.json_response(data)


async def save_dealers(request: web.Request) -> web.Response:
    body = await _read_body(request)
    if isinstance(body, list):
        dealers, last_updated = body, None
    elif isinstance(body, dict) and isinstance(body.get("dealers"), list):
        dealers, last_updated = body["dealers"], body.get("lastUpdated")
    else:
        return _json_error(400, "Body must be a list or an object with a 'dealers' list.")
    if not all(isinstance(d, dict) for d in dealers):
        return _json_error(400, "Every dealer must be an object.")

    payload = {
        "lastUpdated": last_updated or now_utc().date().isoformat(),
        "dealers": dealers,
    }
    async with request.app[WRITE_LOCK_KEY]:
        _write_json(request.app[DATA_DIR_KEY] / DEALERS_FILE, payload)
    logger.info("Saved %d dealers", len(dealers))
    return web.json_response({"ok": True, "count": len(dealers)})


# ── Activities ──────────────────────────────────────────────────────


def _stored_activities(data_dir: Path) -> list[dict[str, Any]]:
    data = _read_json(data_dir / ACTIVITIES_FILE)
    if isinstance(data, dict):
        data = data.get("activities")
    if not isinstance(data, list):
        return []
    return [a for a in data if isinstance(a, dict)]


async def get_activities(request: web.Request) -> web.Response:
    return web.json_response({"activities": _stored_activities(request.app[DATA_DIR_KEY])})


async def add_activity(request: web.Request) -> web.Response:
    body = await _read_body(request)
    if not isinstance(body, dict):
        return _json_error(400, "Activity must be an object.")
    for required in ACTIVITY_REQUIRED_FIELDS:
        if is_blank(body.get(required)):
            return _json_error(400, f"{required} is required.")

    activity = dict(body)
    activity["id"] = as_id(body.get("id")) or new_activity_id()
    activity["dealerId"] = as_id(body["dealerId"])
    activity["type"] = normalize_activity_type(body["type"]) or body["type"]
    activity["createdAt"] = format_timestamp(now_utc())

    data_dir = request.app[DATA_DIR_KEY]
    async with request.app[WRITE_LOCK_KEY]:
        activities = _stored_activities(data_dir)
        activities.insert(0, activity)
        _write_json(data_dir / ACTIVITIES_FILE, {"activities": activities})
    return web.json_response({"activity": activity}, status=201)


# ── App factory / CLI ───────────────────────────────────────────────


def create_app(data_dir: str | Path) -> web.Application:
    app = web.Application(middlewares=[logging_middleware, cors_middleware])
    app[DATA_DIR_KEY] = Path(data_dir)
    app[WRITE_LOCK_KEY] = asyncio.Lock()
    app.router.add_get("/data/dealers.json", get_dealers)
    app.router.add_post("/data/dealers.json", save_dealers)
    app.router.add_post("/api/save-dealers", save_dealers)
    app.router.add_get("/api/activities", get_activities)
    app.router.add_post("/api/activities", add_activity)
    return app


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Serve the dealer directory JSON resource.")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument(
        "--data-dir",
        default=OutreachConfig.from_env().data_dir,
        help="directory holding dealers.json and activities.json",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Serving directory data from %s", Path(args.data_dir).resolve())
    web.run_app(create_app(args.data_dir), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
