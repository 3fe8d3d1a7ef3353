from __future__ import annotations

import asyncio

import fakeredis
import pytest

from questbag.auth import resolve_session
from questbag.client.gateway import AuthError, GatewayClient, NotFoundError, NotModified, OwnershipError
from questbag.client.session import ClientSession
from questbag.client.storage import Level
from questbag.fsm import ViewState
from questbag.settings import ClientSettings


async def _drain(session: ClientSession) -> None:
    """Wait until the cascade of dependent fetches has settled."""

    fetchers = (session.store.adventures, session.store.players, session.store.inventories, session.catalog.fetcher)
    for _ in range(3):
        for fetcher in fetchers:
            await fetcher.wait()
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_gateway_unwraps_envelopes(gateway: GatewayClient) -> None:
    page = await gateway.list_adventures()
    assert [a.adventure_id for a in page.adventures] == ["adv-1"]

    players = await gateway.list_players("adv-1")
    assert players.adventure_name == "Shattered Isles"
    assert [p.player_id for p in players.players] == ["player-1"]


@pytest.mark.asyncio
async def test_gateway_maps_error_statuses(gateway: GatewayClient) -> None:
    with pytest.raises(NotFoundError) as not_found:
        await gateway.list_players("nope")
    assert str(not_found.value) == "Adventure not found"
    assert not_found.value.status_code == 404

    with pytest.raises(OwnershipError):
        await gateway.list_inventories("player-2")


@pytest.mark.asyncio
async def test_gateway_conditional_inventories(gateway: GatewayClient) -> None:
    page = await gateway.list_inventories("player-1")
    assert len(page.inventories) == 2

    with pytest.raises(NotModified):
        await gateway.list_inventories("player-1")

    gateway.forget_etag("/player/player-1/inventories")
    assert (await gateway.list_inventories("player-1")).player_id == "player-1"


@pytest.mark.asyncio
async def test_unconditional_fetch_still_records_the_etag(gateway: GatewayClient) -> None:
    page = await gateway.list_inventories("player-1", conditional=False)
    assert page.player_id == "player-1"

    with pytest.raises(NotModified):
        await gateway.list_inventories("player-1", conditional=True)


@pytest.mark.asyncio
async def test_gateway_without_token_is_auth_error(gateway: GatewayClient) -> None:
    gateway.set_token(None)
    with pytest.raises(AuthError):
        await gateway.list_adventures()


@pytest.mark.asyncio
async def test_session_restores_the_whole_cascade(
    gateway: GatewayClient, redis_client: fakeredis.FakeRedis, world
) -> None:
    settings = ClientSettings(api_base_url="http://questbag.test", redis_url="redis://unused")
    session = ClientSession(gateway=gateway, r=redis_client, settings=settings, user_id=world.user_id)

    session.start()
    await _drain(session)

    state = session.store.state
    # One adventure and one player: both picked automatically; two inventories wait for the user.
    assert state.adventure is not None and state.adventure.adventure_id == "adv-1"
    assert state.player is not None and state.player.player_id == "player-1"
    assert state.inventory is None
    assert state.view_state == ViewState.selecting_inventory
    assert session.store.inventories.data is not None
    assert [i.inventory_type for i in session.store.inventories.data.inventories] == ["backpack", "chest"]
    assert [i.item_name for i in session.catalog.items] == ["Potion", "Sword"]

    session.store.select_inventory(session.store.inventories.data.inventories[0])
    assert session.storage.get(Level.inventory) == world.backpack_id

    await session.aclose()


@pytest.mark.asyncio
async def test_logout_revokes_the_token(gateway: GatewayClient, redis_client: fakeredis.FakeRedis, world) -> None:
    settings = ClientSettings(api_base_url="http://questbag.test", redis_url="redis://unused")
    session = ClientSession(gateway=gateway, r=redis_client, settings=settings, user_id=world.user_id)
    session.start()
    await _drain(session)
    assert session.auth.current_user() == world.user_id

    await session.logout()

    assert session.auth.current_user() is None
    assert gateway.token is None
    assert resolve_session(r=redis_client, token=world.token) is None
    assert session.storage.snapshot() == {Level.adventure: None, Level.player: None, Level.inventory: None}
    assert session.store.view_state == ViewState.selecting_adventure

    await session.aclose()
