from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import fakeredis
import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from questbag.client.gateway import GatewayClient


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def client_and_redis(redis_client: fakeredis.FakeRedis) -> Generator[tuple[TestClient, fakeredis.FakeRedis], None, None]:
    """FastAPI TestClient wired to a fakeredis instance."""

    from questbag.api.deps import get_redis
    from questbag.main import app

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield redis_client

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, redis_client
    app.dependency_overrides.clear()


@dataclass(frozen=True)
class SeededWorld:
    user_id: str
    token: str
    other_user_id: str
    other_token: str
    adventure_id: str
    second_adventure_id: str
    player_id: str
    other_player_id: str
    backpack_id: str
    chest_id: str
    sword_id: str
    potion_id: str


def seed_world(r: fakeredis.FakeRedis) -> SeededWorld:
    """Two users, two adventures, one player each in the first adventure."""

    from questbag import row_store
    from questbag.auth import create_session

    base = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    row_store.insert_adventure(r=r, name="Shattered Isles", description="Islands adrift", adventure_id="adv-1")
    row_store.insert_adventure(r=r, name="Ember Wastes", adventure_id="adv-2")
    row_store.insert_role(r=r, role_name="Ranger", role_id="role-ranger")
    row_store.insert_house(r=r, name="House Vell", house_id="house-vell")

    row_store.insert_player(
        r=r,
        user_id="user-1",
        adventure_id="adv-1",
        role_id="role-ranger",
        house_id="house-vell",
        gender="f",
        region="north",
        level=3,
        xp_total=1200,
        join_date=base,
        player_id="player-1",
    )
    row_store.insert_player(
        r=r,
        user_id="user-2",
        adventure_id="adv-1",
        join_date=base + timedelta(days=1),
        player_id="player-2",
    )

    row_store.insert_inventory(r=r, player_id="player-1", inventory_id="inv-backpack")
    row_store.insert_inventory(
        r=r, player_id="player-1", inventory_type="chest", inventory_capacity=50, inventory_id="inv-chest"
    )

    row_store.insert_catalog_item(
        r=r,
        item_name="Sword",
        item_description="Sharp",
        item_rarity="rare",
        item_base_value=40,
        created_at=base,
        item_id="item-sword",
    )
    row_store.insert_catalog_item(
        r=r,
        item_name="Potion",
        created_at=base + timedelta(hours=1),
        item_id="item-potion",
    )
    row_store.put_inventory_line(r=r, inventory_id="inv-backpack", item_id="item-sword", quantity=1, durability=80)
    row_store.put_inventory_line(r=r, inventory_id="inv-backpack", item_id="item-potion", quantity=3)

    return SeededWorld(
        user_id="user-1",
        token=create_session(r=r, user_id="user-1"),
        other_user_id="user-2",
        other_token=create_session(r=r, user_id="user-2"),
        adventure_id="adv-1",
        second_adventure_id="adv-2",
        player_id="player-1",
        other_player_id="player-2",
        backpack_id="inv-backpack",
        chest_id="inv-chest",
        sword_id="item-sword",
        potion_id="item-potion",
    )


@pytest.fixture()
def world(redis_client: fakeredis.FakeRedis) -> SeededWorld:
    return seed_world(redis_client)


@pytest.fixture()
def headers(world: SeededWorld) -> dict[str, str]:
    return {"Authorization": f"Bearer {world.token}"}


@pytest.fixture()
def other_headers(world: SeededWorld) -> dict[str, str]:
    return {"Authorization": f"Bearer {world.other_token}"}


@pytest_asyncio.fixture()
async def gateway(redis_client: fakeredis.FakeRedis, world: SeededWorld) -> AsyncGenerator[GatewayClient, None]:
    """Client gateway talking to the real app in-process, signed in as user-1."""

    from questbag.api.deps import get_redis
    from questbag.main import app, install_state
    from questbag.settings import server_settings_from_env

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield redis_client

    install_state(server_settings_from_env())
    app.dependency_overrides[get_redis] = _override
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://questbag.test")
    client = GatewayClient(http=http, token=world.token)
    try:
        yield client
    finally:
        await client.aclose()
        await app.state.catalog_cache.close()
        app.dependency_overrides.clear()
