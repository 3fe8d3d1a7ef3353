"""Read/write operations behind the HTTP routes.

Each function fetches rows from the row store, flattens joined relations and
returns the API models. Failures are raised as `questbag.errors` exceptions.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import redis

from questbag import row_store
from questbag.api.models import (
    Adventure,
    AdventuresPage,
    CatalogItem,
    CreateItemRequest,
    CreatePlayerRequest,
    InventoriesPage,
    Inventory,
    InventoryItem,
    Player,
    PlayerDetails,
    PlayerProgress,
    PlayerStats,
    PlayersPage,
    UpdatePlayerRequest,
)
from questbag.errors import InvalidInputError, LimitExceededError, NotFoundError, OwnershipError
from questbag.flatten import first_or_none, related_field


logger = logging.getLogger(__name__)

MAX_ITEM_NAME_LENGTH = 255
MAX_ITEM_DESCRIPTION_LENGTH = 1000

DEFAULT_INVENTORY_TYPE = "backpack"
DEFAULT_INVENTORY_CAPACITY = 20

UNKNOWN_ADVENTURE_NAME = "Unknown Adventure"

PLAYER_UPDATABLE_FIELDS = ("role_id", "gender", "house_id", "region")


def _player_from_row(row: dict[str, Any]) -> Player:
    return Player(
        player_id=row["player_id"],
        adventure_id=row["adventure_id"],
        role_id=row.get("role_id"),
        role_name=related_field(row, "role", "role_name"),
        level=row.get("level") or 1,
        xp_total=row.get("xp_total") or 0,
        gender=row.get("gender"),
        join_date=row["join_date"],
        house_id=row.get("house_id"),
        house_name=related_field(row, "house", "name"),
        region=row.get("region"),
    )


def require_adventure(*, r: redis.Redis, adventure_id: str) -> dict[str, Any]:
    adventure = row_store.get_adventure(r=r, adventure_id=adventure_id)
    if adventure is None:
        raise NotFoundError("Adventure not found")
    return adventure


def require_owned_player(*, r: redis.Redis, user_id: str, player_id: str) -> dict[str, Any]:
    row = row_store.get_player_row(r=r, player_id=player_id)
    if row is None:
        raise NotFoundError("Player not found")
    if row["user_id"] != user_id:
        logger.warning("User %s tried to access player %s owned by someone else", user_id, player_id)
        raise OwnershipError("Unauthorized access to player")
    return row


def list_adventures_for_user(*, r: redis.Redis, user_id: str) -> AdventuresPage:
    by_id: dict[str, Adventure] = {}
    for row in row_store.select_player_rows(r=r, user_id=user_id):
        adventure = first_or_none(row.get("adventure"))
        if adventure is None:
            logger.warning("Player %s references a missing adventure", row["player_id"])
            continue

        join_date = datetime.fromisoformat(row["join_date"])
        existing = by_id.get(adventure["adventure_id"])
        if existing is None:
            by_id[adventure["adventure_id"]] = Adventure(
                adventure_id=adventure["adventure_id"],
                name=adventure["name"],
                description=adventure.get("description"),
                player_count=1,
                last_played_at=join_date,
            )
            continue

        existing.player_count += 1
        if existing.last_played_at is None or join_date > existing.last_played_at:
            existing.last_played_at = join_date

    adventures = sorted(
        by_id.values(),
        key=lambda a: a.last_played_at or datetime.min.replace(tzinfo=UTC),
        reverse=True,
    )
    return AdventuresPage(adventures=adventures, total_count=len(adventures))


def list_players(*, r: redis.Redis, user_id: str, adventure_id: str) -> PlayersPage:
    adventure = require_adventure(r=r, adventure_id=adventure_id)
    rows = row_store.select_player_rows(r=r, user_id=user_id, adventure_id=adventure_id)
    players = [_player_from_row(row) for row in rows]
    return PlayersPage(
        players=players,
        total_count=len(players),
        adventure_id=adventure_id,
        adventure_name=adventure["name"],
    )


def create_player(
    *,
    r: redis.Redis,
    user_id: str,
    adventure_id: str,
    payload: CreatePlayerRequest,
    max_players: int = 5,
) -> Player:
    require_adventure(r=r, adventure_id=adventure_id)

    existing = row_store.count_player_rows(r=r, user_id=user_id, adventure_id=adventure_id)
    if existing >= max_players:
        raise LimitExceededError(f"Maximum {max_players} players per adventure reached")

    row = row_store.insert_player(
        r=r,
        user_id=user_id,
        adventure_id=adventure_id,
        role_id=payload.role_id or None,
        gender=payload.gender or None,
        house_id=payload.house_id or None,
        region=payload.region or None,
    )
    row_store.insert_inventory(
        r=r,
        player_id=row["player_id"],
        inventory_type=DEFAULT_INVENTORY_TYPE,
        inventory_capacity=DEFAULT_INVENTORY_CAPACITY,
    )
    logger.info("Created player %s in adventure %s for user %s", row["player_id"], adventure_id, user_id)

    joined = row_store.get_player_row(r=r, player_id=row["player_id"])
    assert joined is not None
    return _player_from_row(joined)


def get_player_details(*, r: redis.Redis, user_id: str, player_id: str) -> PlayerDetails:
    row = require_owned_player(r=r, user_id=user_id, player_id=player_id)
    player = _player_from_row(row)

    stats = row_store.get_player_stats(r=r, player_id=player_id)
    progress = row_store.get_player_progress(r=r, player_id=player_id)

    return PlayerDetails(
        **player.model_dump(),
        user_id=row["user_id"],
        adventure_name=related_field(row, "adventure", "name") or UNKNOWN_ADVENTURE_NAME,
        skill_point_available=row.get("skill_point_available") or 0,
        birth_date=row.get("birth_date"),
        stats=PlayerStats(**stats) if stats else None,
        progress=PlayerProgress(**progress) if progress else None,
    )


def update_player(*, r: redis.Redis, user_id: str, player_id: str, payload: UpdatePlayerRequest) -> PlayerDetails:
    require_owned_player(r=r, user_id=user_id, player_id=player_id)

    fields = payload.model_dump(include=set(PLAYER_UPDATABLE_FIELDS), exclude_unset=True)
    if not fields:
        raise InvalidInputError("No valid fields to update")

    row_store.update_player(r=r, player_id=player_id, fields=fields)
    return get_player_details(r=r, user_id=user_id, player_id=player_id)


def _inventory_from_row(*, r: redis.Redis, row: dict[str, Any]) -> Inventory:
    items: list[InventoryItem] = []
    for line in row_store.select_inventory_lines(r=r, inventory_id=row["inventory_id"]):
        item = first_or_none(line.get("items"))
        if item is None:
            continue
        items.append(
            InventoryItem(
                item_id=item["item_id"],
                item_name=item["item_name"],
                item_description=item.get("item_description"),
                item_category=item.get("item_category"),
                item_rarity=item.get("item_rarity"),
                item_base_value=item.get("item_base_value"),
                is_city_key=bool(item.get("is_city_key")),
                quantity=line.get("quantity") or 0,
                durability=line.get("durability"),
            )
        )

    return Inventory(
        inventory_id=row["inventory_id"],
        inventory_type=row.get("inventory_type"),
        inventory_capacity=row.get("inventory_capacity"),
        current_usage=sum(i.quantity for i in items),
        items=items,
    )


def list_player_inventories(*, r: redis.Redis, user_id: str, player_id: str) -> InventoriesPage:
    player = require_owned_player(r=r, user_id=user_id, player_id=player_id)

    inventories = [_inventory_from_row(r=r, row=row) for row in row_store.select_inventories(r=r, player_id=player_id)]
    return InventoriesPage(
        inventories=inventories,
        total_items=sum(len(inv.items) for inv in inventories),
        player_id=player_id,
        adventure_id=player["adventure_id"],
        adventure_name=related_field(player, "adventure", "name") or UNKNOWN_ADVENTURE_NAME,
    )


def load_catalog_items(*, r: redis.Redis, limit: int = 100) -> list[CatalogItem]:
    return [CatalogItem.model_validate(row) for row in row_store.select_catalog_items(r=r, limit=limit)]


def validate_new_item(payload: CreateItemRequest) -> tuple[str, str | None]:
    if not isinstance(payload.item_name, str):
        raise InvalidInputError("Item name is required and must be a string")

    name = payload.item_name.strip()
    if not name:
        raise InvalidInputError("Item name cannot be empty")
    if len(name) > MAX_ITEM_NAME_LENGTH:
        raise InvalidInputError(f"Item name must be at most {MAX_ITEM_NAME_LENGTH} characters")

    description = (payload.item_description or "").strip() or None
    if description is not None and len(description) > MAX_ITEM_DESCRIPTION_LENGTH:
        raise InvalidInputError(f"Item description must be at most {MAX_ITEM_DESCRIPTION_LENGTH} characters")

    return name, description


def create_catalog_item(*, r: redis.Redis, payload: CreateItemRequest) -> CatalogItem:
    name, description = validate_new_item(payload)
    row = row_store.insert_catalog_item(
        r=r,
        item_name=name,
        item_description=description,
        item_category=None,
        item_rarity="common",
        item_base_value=1,
        is_city_key=False,
    )
    logger.info("Created catalog item %s (%s)", row["item_id"], name)
    return CatalogItem.model_validate(row)
