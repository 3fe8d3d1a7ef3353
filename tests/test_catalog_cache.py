from __future__ import annotations

import pytest

from questbag.api.models import CatalogItem
from questbag.catalog_cache import CacheStatus, CatalogCache, etag_for


class _Loader:
    def __init__(self, *names: str) -> None:
        self.names = list(names)
        self.calls = 0
        self.fail = False

    def __call__(self) -> list[CatalogItem]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("redis down")
        return [CatalogItem(item_id=f"id-{n}", item_name=n) for n in self.names]


def test_etag_is_quoted_and_stable() -> None:
    a = etag_for([{"b": 1, "a": 2}])
    b = etag_for([{"a": 2, "b": 1}])
    assert a == b
    assert a.startswith('"') and a.endswith('"')
    assert etag_for([]) != a


@pytest.mark.asyncio
async def test_fresh_entry_is_a_hit(clock) -> None:
    cache = CatalogCache(ttl_seconds=60, swr_seconds=30, clock=clock)
    loader = _Loader("Sword")

    first = await cache.lookup(loader=loader)
    assert first.status == CacheStatus.miss
    assert [i.item_name for i in first.items] == ["Sword"]

    clock.advance(59)
    second = await cache.lookup(loader=loader)
    assert second.status == CacheStatus.hit
    assert second.etag == first.etag
    assert second.age_seconds == 59
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_stale_entry_is_served_and_revalidated_once(clock) -> None:
    cache = CatalogCache(ttl_seconds=60, swr_seconds=30, clock=clock)
    loader = _Loader("Sword")
    await cache.lookup(loader=loader)

    loader.names.append("Potion")
    clock.advance(75)

    stale = await cache.lookup(loader=loader)
    again = await cache.lookup(loader=loader)
    assert stale.status == CacheStatus.stale
    assert again.status == CacheStatus.stale
    assert [i.item_name for i in stale.items] == ["Sword"]

    await cache.wait_for_revalidation()
    assert loader.calls == 2

    fresh = await cache.lookup(loader=loader)
    assert fresh.status == CacheStatus.hit
    assert [i.item_name for i in fresh.items] == ["Sword", "Potion"]


@pytest.mark.asyncio
async def test_very_stale_entry_reloads_before_answering(clock) -> None:
    cache = CatalogCache(ttl_seconds=60, swr_seconds=30, clock=clock)
    loader = _Loader("Sword")
    await cache.lookup(loader=loader)

    clock.advance(91)
    result = await cache.lookup(loader=loader)
    assert result.status == CacheStatus.miss
    assert result.age_seconds == 0.0
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_matching_etag_is_not_modified(clock) -> None:
    cache = CatalogCache(clock=clock)
    loader = _Loader("Sword")
    first = await cache.lookup(loader=loader)

    result = await cache.lookup(loader=loader, if_none_match=first.etag)
    assert result.status == CacheStatus.not_modified
    assert result.items == []

    other = await cache.lookup(loader=loader, if_none_match='"something-else"')
    assert other.status == CacheStatus.hit


@pytest.mark.asyncio
async def test_reload_failure_falls_back_to_cached_items(clock) -> None:
    cache = CatalogCache(ttl_seconds=60, swr_seconds=30, clock=clock)
    loader = _Loader("Sword")
    await cache.lookup(loader=loader)

    loader.fail = True
    clock.advance(120)
    result = await cache.lookup(loader=loader)
    assert result.status == CacheStatus.error_fallback
    assert result.etag is None
    assert [i.item_name for i in result.items] == ["Sword"]


@pytest.mark.asyncio
async def test_reload_failure_without_data_raises(clock) -> None:
    cache = CatalogCache(clock=clock)
    loader = _Loader()
    loader.fail = True

    with pytest.raises(RuntimeError):
        await cache.lookup(loader=loader)


@pytest.mark.asyncio
async def test_invalidate_forces_a_reload(clock) -> None:
    cache = CatalogCache(clock=clock)
    loader = _Loader("Sword")
    first = await cache.lookup(loader=loader)

    loader.names.append("Rope")
    await cache.invalidate()

    result = await cache.lookup(loader=loader, if_none_match=first.etag)
    assert result.status == CacheStatus.miss
    assert result.etag != first.etag
    assert len(result.items) == 2


@pytest.mark.asyncio
async def test_conditional_lookup_inside_the_stale_window_revalidates(clock) -> None:
    cache = CatalogCache(ttl_seconds=60, swr_seconds=30, clock=clock)
    loader = _Loader("Sword")
    first = await cache.lookup(loader=loader)

    loader.names.append("Potion")
    clock.advance(75)

    result = await cache.lookup(loader=loader, if_none_match=first.etag)
    assert result.status == CacheStatus.not_modified

    await cache.wait_for_revalidation()
    assert loader.calls == 2

    fresh = await cache.lookup(loader=loader, if_none_match=first.etag)
    assert fresh.status == CacheStatus.hit
    assert fresh.etag != first.etag
    assert [i.item_name for i in fresh.items] == ["Sword", "Potion"]
