"""Selection cascade: adventure -> player -> inventory.

`SelectionStore` is the single owner of the current selection. It keeps the
cascade invariant (no player without an adventure, no inventory without a
player), persists ids through `SelectionStorage`, drives the
`ViewStateMachine` and points the dependent fetchers at the selected parent.

Every selection follows the same order: in-memory mutation, persistence
write, state machine advance, dependent fetch.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Protocol

from questbag.api.models import Adventure, AdventuresPage, InventoriesPage, Inventory, Player, PlayersPage
from questbag.client.fetcher import DEFAULT_MIN_FETCH_INTERVAL, EntityFetcher, FetchState
from questbag.client.gateway import GatewayClient
from questbag.client.storage import Level, SelectionStorage, levels_below
from questbag.fsm import ViewState, ViewStateMachine


logger = logging.getLogger(__name__)


class AuthCapability(Protocol):
    def current_user(self) -> str | None: ...

    async def sign_out(self) -> None: ...


@dataclass(frozen=True, slots=True)
class SelectionState:
    adventure: Adventure | None = None
    player: Player | None = None
    inventory: Inventory | None = None
    view_state: ViewState = ViewState.selecting_adventure
    is_animating: bool = False


SelectionListener = Callable[[SelectionState], None]


class SelectionStore:
    def __init__(
        self,
        *,
        gateway: GatewayClient,
        storage: SelectionStorage,
        auth: AuthCapability | None = None,
        min_interval: float = DEFAULT_MIN_FETCH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._storage = storage
        self._auth = auth
        self._fsm = ViewStateMachine()

        self._adventure: Adventure | None = None
        self._player: Player | None = None
        self._inventory: Inventory | None = None

        self._listeners: list[SelectionListener] = []
        self._animating: set[Level] = set()
        # Levels the user stepped back from; no single-entity auto-select there.
        self._dismissed: set[Level] = set()
        self._seen_revision: dict[Level, int] = {level: 0 for level in Level}
        # Levels whose single-entity auto-select waits for a transition to end.
        self._deferred: set[Level] = set()

        self.adventures: EntityFetcher[AdventuresPage] = EntityFetcher(
            name="adventures",
            load=self._load_adventures,
            parent_required=False,
            min_interval=min_interval,
            clock=clock,
        )
        self.players: EntityFetcher[PlayersPage] = EntityFetcher(
            name="players", load=self._load_players, min_interval=min_interval, clock=clock
        )
        self.inventories: EntityFetcher[InventoriesPage] = EntityFetcher(
            name="inventories", load=self._load_inventories, min_interval=min_interval, clock=clock
        )

        self._unsubscribe = [
            self.adventures.subscribe(lambda s: self._on_list(Level.adventure, s)),
            self.players.subscribe(lambda s: self._on_list(Level.player, s)),
            self.inventories.subscribe(lambda s: self._on_list(Level.inventory, s)),
        ]

    # ---- loaders ----------------------------------------------------------

    async def _load_adventures(self, _parent_id: str | None, *, conditional: bool) -> AdventuresPage:
        return await self._gateway.list_adventures()

    async def _load_players(self, parent_id: str | None, *, conditional: bool) -> PlayersPage:
        assert parent_id is not None
        return await self._gateway.list_players(parent_id)

    async def _load_inventories(self, parent_id: str | None, *, conditional: bool) -> InventoriesPage:
        assert parent_id is not None
        return await self._gateway.list_inventories(parent_id, conditional=conditional)

    # ---- observable state -------------------------------------------------

    @property
    def state(self) -> SelectionState:
        return SelectionState(
            adventure=self._adventure,
            player=self._player,
            inventory=self._inventory,
            view_state=self._fsm.view_state,
            is_animating=bool(self._animating),
        )

    @property
    def selected_adventure(self) -> Adventure | None:
        return self._adventure

    @property
    def selected_player(self) -> Player | None:
        return self._player

    @property
    def selected_inventory(self) -> Inventory | None:
        return self._inventory

    @property
    def view_state(self) -> ViewState:
        return self._fsm.view_state

    @property
    def is_animating(self) -> bool:
        return bool(self._animating)

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("selection listener failed")

    @contextmanager
    def transition(self, level: Level) -> Iterator[None]:
        """Mark a UI transition on `level`; selections there are ignored meanwhile."""

        self._animating.add(level)
        self._notify()
        try:
            yield
        finally:
            self._animating.discard(level)
            self._notify()
            if level in self._deferred:
                self._deferred.discard(level)
                self._replay(level)

    def _ignored(self, level: Level) -> bool:
        if level in self._animating:
            logger.debug("Ignoring %s selection during transition", level.value)
            return True
        return False

    # ---- lifecycle --------------------------------------------------------

    def start(self, *, auto_refresh_seconds: float | None = None) -> None:
        self.adventures.start()
        if auto_refresh_seconds:
            for fetcher in self._fetchers():
                fetcher.enable_auto_refresh(auto_refresh_seconds)

    def _fetchers(self) -> tuple[EntityFetcher, ...]:
        return (self.adventures, self.players, self.inventories)

    def _fetcher(self, level: Level) -> EntityFetcher:
        if level == Level.adventure:
            return self.adventures
        if level == Level.player:
            return self.players
        return self.inventories

    def set_visible(self, visible: bool) -> None:
        for fetcher in self._fetchers():
            fetcher.set_visible(visible)

    def refresh_adventures(self) -> None:
        self.adventures.refresh()

    def refresh_players(self) -> None:
        self.players.refresh()

    def refresh_inventories(self) -> None:
        self.inventories.refresh()

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        for fetcher in self._fetchers():
            fetcher.close()
        self._listeners.clear()

    # ---- selections -------------------------------------------------------

    def select_adventure(self, adventure: Adventure) -> None:
        if self._ignored(Level.adventure):
            return
        logger.info("Selected adventure %s", adventure.adventure_id)
        self._undismiss(Level.adventure)
        self._apply_adventure(adventure)
        self._storage.set(Level.adventure, adventure.adventure_id)
        self._storage.remove(*levels_below(Level.adventure))
        self._fsm.adventure_selected()
        self._after_adventure()

    def select_player(self, player: Player) -> None:
        if self._ignored(Level.player):
            return
        self._require_parent(Level.player)
        logger.info("Selected player %s", player.player_id)
        self._undismiss(Level.player)
        self._apply_player(player)
        self._storage.set(Level.player, player.player_id)
        self._storage.remove(*levels_below(Level.player))
        self._fsm.player_selected()
        self._after_player()

    def select_inventory(self, inventory: Inventory) -> None:
        if self._ignored(Level.inventory):
            return
        self._require_parent(Level.inventory)
        logger.info("Selected inventory %s", inventory.inventory_id)
        self._undismiss(Level.inventory)
        self._inventory = inventory
        self._storage.set(Level.inventory, inventory.inventory_id)
        self._fsm.inventory_selected()
        self._notify()

    def _undismiss(self, level: Level) -> None:
        self._dismissed.difference_update((level, *levels_below(level)))

    def _require_parent(self, level: Level) -> None:
        if level == Level.player and self._adventure is None:
            raise ValueError("Cannot select a player before an adventure")
        if level == Level.inventory and self._player is None:
            raise ValueError("Cannot select an inventory before a player")

    def _apply_adventure(self, adventure: Adventure) -> None:
        # A new adventure always invalidates the lower levels.
        self._adventure = adventure
        self._player = None
        self._inventory = None

    def _apply_player(self, player: Player) -> None:
        self._player = player
        self._inventory = None

    def _after_adventure(self) -> None:
        assert self._adventure is not None
        self._notify()
        self.inventories.set_parent(None)
        self.players.set_parent(self._adventure.adventure_id, force=True)

    def _after_player(self) -> None:
        assert self._player is not None
        self._notify()
        self.inventories.set_parent(self._player.player_id, force=True)

    def clear_selection(self) -> None:
        logger.info("Clearing selection")
        self._adventure = None
        self._player = None
        self._inventory = None
        self._storage.clear()
        self._dismissed.update(Level)
        self._fsm.reset()
        self._notify()
        self.players.set_parent(None)
        self.inventories.set_parent(None)

    def go_back(self) -> None:
        view = self._fsm.view_state
        if view == ViewState.selecting_adventure:
            return

        if view == ViewState.viewing_items:
            self._inventory = None
            self._storage.remove(Level.inventory)
            self._dismissed.add(Level.inventory)
            self._fsm.back()
            self._notify()
            return

        if view == ViewState.selecting_inventory:
            self._player = None
            self._inventory = None
            self._storage.remove(Level.player)
            self._dismissed.add(Level.player)
            self._fsm.back()
            self._notify()
            self.inventories.set_parent(None)
            return

        self._adventure = None
        self._player = None
        self._inventory = None
        self._storage.remove(Level.adventure)
        self._dismissed.add(Level.adventure)
        self._fsm.back()
        self._notify()
        self.players.set_parent(None)
        self.inventories.set_parent(None)

    async def logout(self) -> None:
        for fetcher in self._fetchers():
            fetcher.disable_auto_refresh()
        self.clear_selection()
        self.adventures.clear()
        if self._auth is not None:
            await self._auth.sign_out()

    # ---- restoration ------------------------------------------------------

    def _on_list(self, level: Level, state: FetchState) -> None:
        if state.data is None or state.revision == self._seen_revision[level]:
            return
        self._seen_revision[level] = state.revision
        self._restore(level, _entities(level, state.data))

    def _replay(self, level: Level) -> None:
        data = self._fetcher(level).data
        if data is not None:
            self._restore(level, _entities(level, data))

    def _restore(self, level: Level, entities: Sequence[Adventure | Player | Inventory]) -> None:
        current = self._current(level)
        if current is not None:
            fresh = _find(entities, _entity_id(current))
            if fresh is not None:
                self._refresh_current(level, fresh)
            return

        persisted = self._storage.get(level)
        if persisted is not None:
            match = _find(entities, persisted)
            if match is not None:
                logger.info("Restored %s %s", level.value, persisted)
                self._adopt(level, match)
                return
            logger.warning("Discarding stale %s id %s", level.value, persisted)
            self._storage.remove(level)

        if len(entities) == 1 and level not in self._dismissed:
            if level in self._animating:
                logger.debug("Deferring %s auto-select until the transition ends", level.value)
                self._deferred.add(level)
                return
            logger.info("Auto-selecting the only %s", level.value)
            only = entities[0]
            if level == Level.adventure:
                self.select_adventure(only)  # type: ignore[arg-type]
            elif level == Level.player:
                self.select_player(only)  # type: ignore[arg-type]
            else:
                self.select_inventory(only)  # type: ignore[arg-type]

    def _adopt(self, level: Level, entity: Adventure | Player | Inventory) -> None:
        # Restoration keeps the persisted ids of lower levels so they can resolve next.
        if level == Level.adventure:
            assert isinstance(entity, Adventure)
            self._apply_adventure(entity)
            self._fsm.adventure_selected()
            self._after_adventure()
        elif level == Level.player:
            assert isinstance(entity, Player)
            self._apply_player(entity)
            self._fsm.player_selected()
            self._after_player()
        else:
            assert isinstance(entity, Inventory)
            self._inventory = entity
            self._fsm.inventory_selected()
            self._notify()

    def _current(self, level: Level) -> Adventure | Player | Inventory | None:
        if level == Level.adventure:
            return self._adventure
        if level == Level.player:
            return self._player
        return self._inventory

    def _refresh_current(self, level: Level, fresh: Adventure | Player | Inventory) -> None:
        if fresh == self._current(level):
            return
        if level == Level.adventure:
            self._adventure = fresh  # type: ignore[assignment]
        elif level == Level.player:
            self._player = fresh  # type: ignore[assignment]
        else:
            self._inventory = fresh  # type: ignore[assignment]
        self._notify()


def _entities(level: Level, page: object) -> Sequence[Adventure | Player | Inventory]:
    if level == Level.adventure:
        assert isinstance(page, AdventuresPage)
        return page.adventures
    if level == Level.player:
        assert isinstance(page, PlayersPage)
        return page.players
    assert isinstance(page, InventoriesPage)
    return page.inventories


def _entity_id(entity: Adventure | Player | Inventory) -> str:
    if isinstance(entity, Adventure):
        return entity.adventure_id
    if isinstance(entity, Player):
        return entity.player_id
    return entity.inventory_id


def _find(entities: Sequence[Adventure | Player | Inventory], entity_id: str) -> Adventure | Player | Inventory | None:
    for entity in entities:
        if _entity_id(entity) == entity_id:
            return entity
    return None
