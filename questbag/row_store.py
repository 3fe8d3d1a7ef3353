"""Redis-backed row store.

Rows are JSON documents keyed by id, with Redis sets/sorted sets as indexes.
Readers that join get the related rows embedded as lists (one-or-many shape);
use `questbag.flatten.first_or_none` to read them.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import redis

from questbag.errors import ConflictError


KEY_PREFIX = "questbag:"

ADVENTURES_SET_KEY = f"{KEY_PREFIX}adventures"
ITEMS_ZSET_KEY = f"{KEY_PREFIX}items"
ITEM_NAMES_HASH_KEY = f"{KEY_PREFIX}item_names"

Row = dict[str, Any]


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _new_id() -> str:
    return str(uuid4())


def _row_key(table: str, row_id: str) -> str:
    return f"{KEY_PREFIX}{table}:{row_id}"


def _user_players_key(user_id: str) -> str:
    return f"{KEY_PREFIX}user:{user_id}:players"


def _player_inventories_key(player_id: str) -> str:
    return f"{KEY_PREFIX}player:{player_id}:inventories"


def _inventory_lines_key(inventory_id: str) -> str:
    return f"{KEY_PREFIX}inventory:{inventory_id}:lines"


def _put(r: redis.Redis, table: str, row_id: str, row: Row) -> None:
    r.set(_row_key(table, row_id), json.dumps(row))


def _get(r: redis.Redis, table: str, row_id: str | None) -> Row | None:
    if not row_id:
        return None
    raw = r.get(_row_key(table, row_id))
    if not raw:
        return None
    return json.loads(raw)


def _many(r: redis.Redis, table: str, ids: list[str]) -> list[Row]:
    if not ids:
        return []
    raws = r.mget([_row_key(table, i) for i in ids])
    return [json.loads(raw) for raw in raws if raw]


def _as_relation(row: Row | None) -> list[Row]:
    return [row] if row is not None else []


# ---- writes ---------------------------------------------------------------


def insert_adventure(*, r: redis.Redis, name: str, description: str | None = None, adventure_id: str | None = None) -> Row:
    row = {"adventure_id": adventure_id or _new_id(), "name": name, "description": description}
    _put(r, "adventure", row["adventure_id"], row)
    r.sadd(ADVENTURES_SET_KEY, row["adventure_id"])
    return row


def insert_role(*, r: redis.Redis, role_name: str, role_id: str | None = None) -> Row:
    row = {"role_id": role_id or _new_id(), "role_name": role_name}
    _put(r, "role", row["role_id"], row)
    return row


def insert_house(*, r: redis.Redis, name: str, house_id: str | None = None) -> Row:
    row = {"house_id": house_id or _new_id(), "name": name}
    _put(r, "house", row["house_id"], row)
    return row


def insert_player(
    *,
    r: redis.Redis,
    user_id: str,
    adventure_id: str,
    role_id: str | None = None,
    gender: str | None = None,
    house_id: str | None = None,
    region: str | None = None,
    level: int = 1,
    xp_total: int = 0,
    join_date: datetime | None = None,
    player_id: str | None = None,
) -> Row:
    row = {
        "player_id": player_id or _new_id(),
        "user_id": user_id,
        "adventure_id": adventure_id,
        "role_id": role_id,
        "gender": gender,
        "house_id": house_id,
        "region": region,
        "level": level,
        "xp_total": xp_total,
        "skill_point_available": 0,
        "birth_date": None,
        "join_date": (join_date or _now()).isoformat(),
    }
    _put(r, "player", row["player_id"], row)
    r.sadd(_user_players_key(user_id), row["player_id"])
    return row


def update_player(*, r: redis.Redis, player_id: str, fields: dict[str, Any]) -> Row | None:
    row = _get(r, "player", player_id)
    if row is None:
        return None
    row.update(fields)
    _put(r, "player", player_id, row)
    return row


def put_player_stats(*, r: redis.Redis, player_id: str, stats: dict[str, Any]) -> None:
    r.set(_row_key("player_stats", player_id), json.dumps(stats))


def put_player_progress(*, r: redis.Redis, player_id: str, progress: dict[str, Any]) -> None:
    r.set(_row_key("player_progress", player_id), json.dumps(progress))


def insert_inventory(
    *,
    r: redis.Redis,
    player_id: str,
    inventory_type: str | None = "backpack",
    inventory_capacity: int | None = 20,
    inventory_id: str | None = None,
) -> Row:
    row = {
        "inventory_id": inventory_id or _new_id(),
        "player_id": player_id,
        "inventory_type": inventory_type,
        "inventory_capacity": inventory_capacity,
    }
    _put(r, "inventory", row["inventory_id"], row)
    r.sadd(_player_inventories_key(player_id), row["inventory_id"])
    return row


def insert_catalog_item(
    *,
    r: redis.Redis,
    item_name: str,
    item_description: str | None = None,
    item_category: str | None = None,
    item_rarity: str | None = "common",
    item_base_value: int | None = 1,
    is_city_key: bool = False,
    created_at: datetime | None = None,
    item_id: str | None = None,
) -> Row:
    item_id = item_id or _new_id()
    # Unique item names: claim the name first so concurrent inserts cannot both win.
    if not r.hsetnx(ITEM_NAMES_HASH_KEY, item_name, item_id):
        raise ConflictError("An item with this name already exists")

    created = created_at or _now()
    row = {
        "item_id": item_id,
        "item_name": item_name,
        "item_description": item_description,
        "item_category": item_category,
        "item_rarity": item_rarity,
        "item_base_value": item_base_value,
        "is_city_key": is_city_key,
        "created_at": created.isoformat(),
    }
    _put(r, "item", item_id, row)
    r.zadd(ITEMS_ZSET_KEY, {item_id: created.timestamp()})
    return row


def put_inventory_line(
    *,
    r: redis.Redis,
    inventory_id: str,
    item_id: str,
    quantity: int = 1,
    durability: int | None = None,
) -> Row:
    line = {"item_id": item_id, "quantity": quantity, "durability": durability}
    r.hset(_inventory_lines_key(inventory_id), item_id, json.dumps(line))
    return line


# ---- reads ----------------------------------------------------------------


def get_adventure(*, r: redis.Redis, adventure_id: str) -> Row | None:
    return _get(r, "adventure", adventure_id)


def get_player_row(*, r: redis.Redis, player_id: str) -> Row | None:
    """Player row joined with its adventure, role and house."""

    row = _get(r, "player", player_id)
    if row is None:
        return None
    return _join_player(r, row)


def get_player_stats(*, r: redis.Redis, player_id: str) -> Row | None:
    return _get(r, "player_stats", player_id)


def get_player_progress(*, r: redis.Redis, player_id: str) -> Row | None:
    return _get(r, "player_progress", player_id)


def _join_player(r: redis.Redis, row: Row) -> Row:
    joined = dict(row)
    joined["adventure"] = _as_relation(_get(r, "adventure", row.get("adventure_id")))
    joined["role"] = _as_relation(_get(r, "role", row.get("role_id")))
    joined["house"] = _as_relation(_get(r, "house", row.get("house_id")))
    return joined


def select_player_rows(*, r: redis.Redis, user_id: str, adventure_id: str | None = None) -> list[Row]:
    """All players of `user_id` (optionally within one adventure), newest join first."""

    ids = sorted(r.smembers(_user_players_key(user_id)))
    rows = _many(r, "player", ids)
    if adventure_id is not None:
        rows = [row for row in rows if row.get("adventure_id") == adventure_id]
    rows.sort(key=lambda row: row.get("join_date") or "", reverse=True)
    return [_join_player(r, row) for row in rows]


def count_player_rows(*, r: redis.Redis, user_id: str, adventure_id: str) -> int:
    return len(select_player_rows(r=r, user_id=user_id, adventure_id=adventure_id))


def select_inventories(*, r: redis.Redis, player_id: str) -> list[Row]:
    ids = sorted(r.smembers(_player_inventories_key(player_id)))
    rows = _many(r, "inventory", ids)
    rows.sort(key=lambda row: (row.get("inventory_type") or "", row["inventory_id"]))
    return rows


def select_inventory_lines(*, r: redis.Redis, inventory_id: str) -> list[Row]:
    """Lines of one inventory joined with their catalog item, ordered by item name."""

    raw_lines = r.hgetall(_inventory_lines_key(inventory_id))
    rows: list[Row] = []
    for raw in raw_lines.values():
        line = json.loads(raw)
        line["items"] = _as_relation(_get(r, "item", line["item_id"]))
        rows.append(line)

    def _name(row: Row) -> str:
        items = row["items"]
        return (items[0].get("item_name") or "") if items else ""

    rows.sort(key=_name)
    return rows


def select_catalog_items(*, r: redis.Redis, limit: int = 100) -> list[Row]:
    ids = r.zrevrange(ITEMS_ZSET_KEY, 0, limit - 1)
    return _many(r, "item", list(ids))
