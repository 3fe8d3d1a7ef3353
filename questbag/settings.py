from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def load_env_file(path: Path | None = None) -> bool:
    """Load a `.env` file into the process environment if one exists.

    Real environment variables always win over values from the file.
    """

    env_path = path or Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(dotenv_path=env_path, override=False)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True, slots=True)
class ServerSettings:
    redis_url: str
    max_players_per_adventure: int = 5
    catalog_ttl_seconds: float = 60.0
    catalog_swr_seconds: float = 30.0
    catalog_limit: int = 100


@dataclass(frozen=True, slots=True)
class ClientSettings:
    api_base_url: str
    redis_url: str
    # Per-fetcher throttle window.
    min_fetch_interval: float = 2.0
    auto_refresh_seconds: float = 30.0


def get_redis_url() -> str:
    return os.environ.get("QUESTBAG_REDIS_URL") or os.environ.get("REDIS_URL") or DEFAULT_REDIS_URL


def server_settings_from_env() -> ServerSettings:
    return ServerSettings(
        redis_url=get_redis_url(),
        max_players_per_adventure=_env_int("QUESTBAG_MAX_PLAYERS_PER_ADVENTURE", 5),
        catalog_ttl_seconds=_env_float("QUESTBAG_CATALOG_TTL_SECONDS", 60.0),
        catalog_swr_seconds=_env_float("QUESTBAG_CATALOG_SWR_SECONDS", 30.0),
    )


def client_settings_from_env() -> ClientSettings:
    return ClientSettings(
        api_base_url=os.environ.get("QUESTBAG_API_BASE_URL", "http://127.0.0.1:8000"),
        redis_url=get_redis_url(),
        min_fetch_interval=_env_float("QUESTBAG_MIN_FETCH_INTERVAL", 2.0),
        auto_refresh_seconds=_env_float("QUESTBAG_AUTO_REFRESH_SECONDS", 30.0),
    )
