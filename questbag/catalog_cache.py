"""Process-wide cache for the shared item catalog.

One `CatalogCache` instance is owned by the FastAPI app. Every write to the
cached entry happens under the cache's lock; background revalidation runs as
at most one owned task at a time.

Staleness policy:
  - age <= ttl                -> HIT (served from memory)
  - ttl < age <= ttl + swr    -> STALE (served from memory, one background reload)
  - age > ttl + swr, or empty -> MISS (reloaded before answering)
  - reload fails, data cached -> ERROR-FALLBACK
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from questbag.api.models import CatalogItem


logger = logging.getLogger(__name__)

CatalogLoader = Callable[[], list[CatalogItem]]


def etag_for(payload: Any) -> str:
    """Strong ETag over the JSON form of `payload`."""

    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return '"' + hashlib.sha1(raw).hexdigest()[:27] + '"'


class CacheStatus(StrEnum):
    hit = "HIT"
    stale = "STALE"
    miss = "MISS"
    error_fallback = "ERROR-FALLBACK"
    not_modified = "NOT-MODIFIED"


@dataclass(frozen=True, slots=True)
class _Entry:
    items: list[CatalogItem]
    etag: str
    # None means "invalidated": treated as older than any window.
    fetched_at: float | None


@dataclass(frozen=True, slots=True)
class CacheLookup:
    status: CacheStatus
    etag: str | None
    items: list[CatalogItem]
    age_seconds: float | None


class CatalogCache:
    def __init__(
        self,
        *,
        ttl_seconds: float = 60.0,
        swr_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.swr_seconds = swr_seconds
        self._clock = clock
        self._entry: _Entry | None = None
        self._lock = asyncio.Lock()
        self._revalidation: asyncio.Task[None] | None = None

    @property
    def cache_control(self) -> str:
        return f"public, max-age={int(self.ttl_seconds)}, stale-while-revalidate={int(self.swr_seconds)}"

    def _age(self, entry: _Entry) -> float | None:
        if entry.fetched_at is None:
            return None
        return self._clock() - entry.fetched_at

    def _is_stale(self, age: float | None) -> bool:
        return age is None or age > self.ttl_seconds

    def _is_very_stale(self, age: float | None) -> bool:
        return age is None or age > self.ttl_seconds + self.swr_seconds

    async def lookup(self, *, loader: CatalogLoader, if_none_match: str | None = None) -> CacheLookup:
        entry = self._entry
        if entry is not None:
            age = self._age(entry)
            if if_none_match and if_none_match == entry.etag and not self._is_very_stale(age):
                if self._is_stale(age):
                    self._schedule_revalidation(loader)
                return CacheLookup(status=CacheStatus.not_modified, etag=entry.etag, items=[], age_seconds=age)
            if not self._is_stale(age):
                return CacheLookup(status=CacheStatus.hit, etag=entry.etag, items=entry.items, age_seconds=age)
            if not self._is_very_stale(age):
                self._schedule_revalidation(loader)
                return CacheLookup(status=CacheStatus.stale, etag=entry.etag, items=entry.items, age_seconds=age)

        try:
            fresh = await self._reload(loader)
        except Exception:
            fallback = self._entry
            if fallback is None:
                raise
            logger.warning("Catalog reload failed; serving cached items", exc_info=True)
            return CacheLookup(
                status=CacheStatus.error_fallback,
                etag=None,
                items=fallback.items,
                age_seconds=self._age(fallback),
            )
        return CacheLookup(status=CacheStatus.miss, etag=fresh.etag, items=fresh.items, age_seconds=0.0)

    async def _reload(self, loader: CatalogLoader) -> _Entry:
        async with self._lock:
            items = loader()
            entry = _Entry(
                items=items,
                etag=etag_for([i.model_dump(mode="json") for i in items]),
                fetched_at=self._clock(),
            )
            self._entry = entry
            logger.debug("Catalog cache reloaded (%d items)", len(items))
            return entry

    def _schedule_revalidation(self, loader: CatalogLoader) -> None:
        if self._revalidation is not None and not self._revalidation.done():
            return
        self._revalidation = asyncio.get_running_loop().create_task(self._revalidate(loader))

    async def _revalidate(self, loader: CatalogLoader) -> None:
        try:
            await self._reload(loader)
        except Exception:
            logger.exception("Background catalog revalidation failed")

    async def wait_for_revalidation(self) -> None:
        task = self._revalidation
        if task is not None:
            await task

    async def invalidate(self) -> None:
        """Force the next lookup to reload (cached items remain as error fallback)."""

        async with self._lock:
            if self._entry is not None:
                self._entry = _Entry(items=self._entry.items, etag=self._entry.etag, fetched_at=None)

    async def close(self) -> None:
        task = self._revalidation
        self._revalidation = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
