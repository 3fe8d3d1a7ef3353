from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import redis


class Level(StrEnum):
    adventure = "adventure"
    player = "player"
    inventory = "inventory"


# Top-down cascade order.
LEVELS: tuple[Level, ...] = (Level.adventure, Level.player, Level.inventory)


def levels_below(level: Level) -> tuple[Level, ...]:
    return LEVELS[LEVELS.index(level) + 1 :]


@dataclass(frozen=True, slots=True)
class SelectionStorage:
    """Durable selection ids, one Redis string per level.

    Keys are namespaced per client profile so several local users do not
    share a selection. A missing key is the normal "nothing selected" state.
    """

    r: redis.Redis
    profile: str = "default"

    def key(self, level: Level) -> str:
        return f"questbag:client:{self.profile}:selected_{level.value}_id"

    def get(self, level: Level) -> str | None:
        value = self.r.get(self.key(level))
        return str(value) if value else None

    def set(self, level: Level, entity_id: str) -> None:
        self.r.set(self.key(level), entity_id)

    def remove(self, *levels: Level) -> None:
        if levels:
            self.r.delete(*(self.key(level) for level in levels))

    def clear(self) -> None:
        self.remove(*LEVELS)

    def snapshot(self) -> dict[Level, str | None]:
        return {level: self.get(level) for level in LEVELS}
