from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")


class Adventure(BaseModel):
    adventure_id: str
    name: str
    description: str | None = None

    # Derived from the calling user's players in this adventure.
    player_count: int = 0
    last_played_at: datetime | None = None


class AdventuresPage(BaseModel):
    adventures: list[Adventure]
    total_count: int


class Player(BaseModel):
    player_id: str
    adventure_id: str
    role_id: str | None = None
    role_name: str | None = None
    level: int = 1
    xp_total: int = 0
    gender: str | None = None
    join_date: datetime
    house_id: str | None = None
    house_name: str | None = None
    region: str | None = None


class PlayersPage(BaseModel):
    players: list[Player]
    total_count: int
    adventure_id: str
    adventure_name: str


class PlayerStats(BaseModel):
    current_hp: int | None = None
    max_hp: int | None = None
    current_mana: int | None = None
    max_mana: int | None = None
    strength: int | None = None
    dexterity: int | None = None
    intelligence: int | None = None
    wisdom: int | None = None
    charisma: int | None = None
    constitution: int | None = None
    status_effect: str | None = None


class PlayerProgress(BaseModel):
    quest_completed: int | None = None
    pvp_victory: int | None = None
    events_participated: int | None = None
    achievements_points: int | None = None


class PlayerDetails(Player):
    user_id: str
    adventure_name: str
    skill_point_available: int = 0
    birth_date: str | None = None
    stats: PlayerStats | None = None
    progress: PlayerProgress | None = None


class CreatePlayerRequest(BaseModel):
    role_id: str | None = None
    gender: str | None = None
    house_id: str | None = None
    region: str | None = None


class UpdatePlayerRequest(BaseModel):
    role_id: str | None = None
    gender: str | None = None
    house_id: str | None = None
    region: str | None = None


class CatalogItem(BaseModel):
    item_id: str
    item_name: str
    item_description: str | None = None
    item_category: str | None = None
    item_rarity: str | None = None
    item_base_value: int | None = None
    is_city_key: bool = False
    created_at: datetime | None = None


class InventoryItem(BaseModel):
    """A catalog item as held in one inventory."""

    item_id: str
    item_name: str
    item_description: str | None = None
    item_category: str | None = None
    item_rarity: str | None = None
    item_base_value: int | None = None
    is_city_key: bool = False
    quantity: int = 1
    durability: int | None = Field(default=None, ge=0, le=100)


class Inventory(BaseModel):
    inventory_id: str
    inventory_type: str | None = None
    inventory_capacity: int | None = None
    current_usage: int = 0
    items: list[InventoryItem] = Field(default_factory=list)


class InventoriesPage(BaseModel):
    inventories: list[Inventory]
    total_items: int
    player_id: str
    adventure_id: str
    adventure_name: str


class CreateItemRequest(BaseModel):
    # Validated by the query layer so bad input is a 400, not a schema 422.
    item_name: str | None = None
    item_description: str | None = None


class DataEnvelope(BaseModel, Generic[T]):
    data: T
    message: str | None = None


class ErrorEnvelope(BaseModel):
    error: str
    details: str | None = None
