from __future__ import annotations

import secrets

import redis


SESSION_KEY_PREFIX = "questbag:session:"  # + {token}
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24 * 7


def _session_key(token: str) -> str:
    return f"{SESSION_KEY_PREFIX}{token}"


def create_session(*, r: redis.Redis, user_id: str, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS) -> str:
    """Issue a bearer token for `user_id`."""

    token = secrets.token_urlsafe(32)
    r.set(_session_key(token), user_id, ex=ttl_seconds)
    return token


def resolve_session(*, r: redis.Redis, token: str | None) -> str | None:
    if not token:
        return None
    user_id = r.get(_session_key(token))
    return str(user_id) if user_id else None


def revoke_session(*, r: redis.Redis, token: str) -> bool:
    return bool(r.delete(_session_key(token)))
