from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass

import redis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from questbag.auth import resolve_session
from questbag.catalog_cache import CatalogCache
from questbag.infra.redis_client import create_redis
from questbag.settings import ServerSettings


# auto_error=False so a missing header becomes our 401 envelope, not FastAPI's 403.
bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True, slots=True)
class CurrentUser:
    user_id: str
    token: str


def get_redis(request: Request) -> Generator[redis.Redis, None, None]:
    client = create_redis(get_settings(request).redis_url)
    try:
        yield client
    finally:
        client.close()


def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_catalog_cache(request: Request) -> CatalogCache:
    return request.app.state.catalog_cache


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    r: redis.Redis = Depends(get_redis),
) -> CurrentUser:
    token = credentials.credentials if credentials else None
    user_id = resolve_session(r=r, token=token)
    if user_id is None or token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return CurrentUser(user_id=user_id, token=token)
