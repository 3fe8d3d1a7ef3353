from __future__ import annotations

from enum import StrEnum

from statemachine import State, StateMachine


class ViewState(StrEnum):
    selecting_adventure = "selecting-adventure"
    selecting_player = "selecting-player"
    selecting_inventory = "selecting-inventory"
    viewing_items = "viewing-items"


class ViewStateMachine(StateMachine):
    """Which screen of the cascade is active.

    Only the selection store drives it: selections move forward, `back` steps
    one level up, `reset` returns to the start. Fetch completions and timers
    never send events here directly.
    """

    selecting_adventure = State(
        ViewState.selecting_adventure.value,
        value=ViewState.selecting_adventure.value,
        initial=True,
    )
    selecting_player = State(ViewState.selecting_player.value, value=ViewState.selecting_player.value)
    selecting_inventory = State(ViewState.selecting_inventory.value, value=ViewState.selecting_inventory.value)
    viewing_items = State(ViewState.viewing_items.value, value=ViewState.viewing_items.value)

    # Picking a level is allowed from any screen at or below it.
    adventure_selected = (
        selecting_adventure.to(selecting_player)
        | selecting_player.to(selecting_player)
        | selecting_inventory.to(selecting_player)
        | viewing_items.to(selecting_player)
    )
    player_selected = (
        selecting_player.to(selecting_inventory)
        | selecting_inventory.to(selecting_inventory)
        | viewing_items.to(selecting_inventory)
    )
    inventory_selected = selecting_inventory.to(viewing_items) | viewing_items.to(viewing_items)

    back = (
        viewing_items.to(selecting_inventory)
        | selecting_inventory.to(selecting_player)
        | selecting_player.to(selecting_adventure)
    )
    reset = (
        selecting_adventure.to(selecting_adventure)
        | selecting_player.to(selecting_adventure)
        | selecting_inventory.to(selecting_adventure)
        | viewing_items.to(selecting_adventure)
    )

    def __init__(self, start: ViewState = ViewState.selecting_adventure):
        super().__init__(start_value=start.value)

    @property
    def view_state(self) -> ViewState:
        return ViewState(str(self.current_state.value))

    @property
    def at_start(self) -> bool:
        return self.view_state == ViewState.selecting_adventure
