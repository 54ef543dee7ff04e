"""Runtime configuration for the outreach directory, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_PACKAGE_DIR = Path(__file__).resolve().parent
_ENV_FILE = _PACKAGE_DIR.parent / ".env"

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_FALLBACK_DB = str(_PACKAGE_DIR / "data" / "fallback.db")
DEFAULT_REQUEST_TIMEOUT = 12.0


def load_env_file(path: Path = _ENV_FILE) -> None:
    """Load KEY=VALUE lines from a .env file without overriding the environment."""
    if not path.is_file():
        return
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            os.environ.setdefault(k.strip(), v.strip())


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0, got {raw!r}")
    return value


@dataclass(frozen=True)
class OutreachConfig:
    """Where the directory lives remotely and where the local fallback copy goes."""

    base_url: str = DEFAULT_BASE_URL
    dealers_path: str = "/data/dealers.json"
    save_dealers_path: str = "/api/save-dealers"
    activities_path: str = "/api/activities"
    fallback_db: str = DEFAULT_FALLBACK_DB
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    data_dir: str = "data"

    @classmethod
    def from_env(cls) -> OutreachConfig:
        load_env_file()
        env = os.environ
        return cls(
            base_url=env.get("OUTREACH_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            dealers_path=env.get("OUTREACH_DEALERS_PATH", cls.dealers_path),
            save_dealers_path=env.get("OUTREACH_SAVE_DEALERS_PATH", cls.save_dealers_path),
            activities_path=env.get("OUTREACH_ACTIVITIES_PATH", cls.activities_path),
            fallback_db=env.get("OUTREACH_FALLBACK_DB", DEFAULT_FALLBACK_DB),
            request_timeout=_env_float("OUTREACH_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            data_dir=env.get("OUTREACH_DATA_DIR", cls.data_dir),
        )
