from __future__ import annotations

import asyncio

import pytest

from questbag.api.models import CatalogItem
from questbag.client.catalog import TENTATIVE_ID_PREFIX, ItemCatalog
from questbag.client.gateway import ConflictError, GatewayClient


@pytest.mark.asyncio
async def test_catalog_loads_and_creates_against_the_api(gateway: GatewayClient, clock) -> None:
    catalog = ItemCatalog(gateway=gateway, clock=clock)
    catalog.start()
    await catalog.fetcher.wait()
    assert [i.item_name for i in catalog.items] == ["Potion", "Sword"]

    assert await catalog.create_item("Rope", "Fifty feet") is True
    first = catalog.items[0]
    assert first.item_name == "Rope"
    assert not first.item_id.startswith(TENTATIVE_ID_PREFIX)
    assert catalog.error is None

    clock.advance(3)
    catalog.refresh()
    await catalog.fetcher.wait()
    names = [i.item_name for i in catalog.items]
    assert names == ["Rope", "Potion", "Sword"]
    catalog.close()


@pytest.mark.asyncio
async def test_rejected_create_rolls_back(gateway: GatewayClient, clock) -> None:
    catalog = ItemCatalog(gateway=gateway, clock=clock)
    catalog.start()
    await catalog.fetcher.wait()

    assert await catalog.create_item("Sword") is False
    assert catalog.error == "An item with this name already exists"
    assert [i.item_name for i in catalog.items] == ["Potion", "Sword"]
    assert not catalog.is_creating
    catalog.close()


class _SlowCreateGateway:
    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.reject = False
        self.forgotten: list[str] = []

    async def list_items(self, *, conditional: bool = True) -> list[CatalogItem]:
        return [CatalogItem(item_id="item-sword", item_name="Sword")]

    async def create_item(self, *, item_name: str, item_description: str | None = None) -> CatalogItem:
        await self.release.wait()
        if self.reject:
            raise ConflictError("An item with this name already exists", status_code=409)
        return CatalogItem(item_id="item-rope", item_name=item_name, item_description=item_description)

    def forget_etag(self, path: str) -> None:
        self.forgotten.append(path)


@pytest.mark.asyncio
async def test_tentative_item_is_visible_until_confirmed(clock) -> None:
    slow = _SlowCreateGateway()
    catalog = ItemCatalog(gateway=slow, clock=clock)  # type: ignore[arg-type]
    catalog.start()
    await catalog.fetcher.wait()

    pending = asyncio.create_task(catalog.create_item("Rope"))
    await asyncio.sleep(0)

    assert catalog.is_creating
    tentative = catalog.items[0]
    assert tentative.item_name == "Rope"
    assert tentative.item_id.startswith(TENTATIVE_ID_PREFIX)

    slow.release.set()
    assert await pending is True
    assert [i.item_id for i in catalog.items] == ["item-rope", "item-sword"]
    assert slow.forgotten == ["/items"]
    catalog.close()


@pytest.mark.asyncio
async def test_tentative_item_disappears_on_rejection(clock) -> None:
    slow = _SlowCreateGateway()
    slow.reject = True
    catalog = ItemCatalog(gateway=slow, clock=clock)  # type: ignore[arg-type]
    catalog.start()
    await catalog.fetcher.wait()

    pending = asyncio.create_task(catalog.create_item("Sword"))
    await asyncio.sleep(0)
    assert len(catalog.items) == 2

    slow.release.set()
    assert await pending is False
    assert [i.item_id for i in catalog.items] == ["item-sword"]
    assert catalog.error == "An item with this name already exists"
    assert slow.forgotten == []
    catalog.close()
