"""Seed a Redis instance with demo questbag data.

Contract
- Inputs: `QUESTBAG_REDIS_URL` (or `REDIS_URL`), optional `.env`.
- Outputs:
  - two adventures, one role, one house
  - three players for `QUESTBAG_DEMO_USER` (default `demo-user`), each with a backpack
  - a small item catalog, some of it placed in the first backpack
  - a session token for the demo user, printed to stdout

Usage:
    uv run python scripts/seed_demo_data.py

Ids are fixed so re-running overwrites the same rows; catalog items that
already exist are left alone.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from questbag import row_store
from questbag.auth import create_session
from questbag.errors import ConflictError
from questbag.infra.redis_client import create_redis
from questbag.settings import load_env_file


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemoItem:
    item_id: str
    name: str
    description: str
    category: str
    rarity: str
    base_value: int


ITEMS: tuple[DemoItem, ...] = (
    DemoItem("demo-item-sword", "Iron Sword", "A plain but reliable blade", "weapon", "common", 25),
    DemoItem("demo-item-potion", "Healing Potion", "Restores a little health", "consumable", "common", 10),
    DemoItem("demo-item-map", "Faded Map", "Shows the old roads", "misc", "uncommon", 40),
    DemoItem("demo-item-key", "Harbor Key", "Opens the harbor gate", "key", "rare", 120),
)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    load_env_file()

    user_id = os.environ.get("QUESTBAG_DEMO_USER", "demo-user")
    r = create_redis()
    base = datetime(2024, 1, 1, tzinfo=UTC)

    row_store.insert_adventure(r=r, name="Shattered Isles", description="Islands adrift on a grey sea", adventure_id="demo-adv-isles")
    row_store.insert_adventure(r=r, name="Ember Wastes", description="A desert that never cools", adventure_id="demo-adv-wastes")
    row_store.insert_role(r=r, role_name="Ranger", role_id="demo-role-ranger")
    row_store.insert_house(r=r, name="House Vell", house_id="demo-house-vell")

    players = (
        ("demo-player-1", "demo-adv-isles", base),
        ("demo-player-2", "demo-adv-isles", base + timedelta(days=3)),
        ("demo-player-3", "demo-adv-wastes", base + timedelta(days=7)),
    )
    for player_id, adventure_id, joined in players:
        row_store.insert_player(
            r=r,
            user_id=user_id,
            adventure_id=adventure_id,
            role_id="demo-role-ranger",
            house_id="demo-house-vell",
            join_date=joined,
            player_id=player_id,
        )
        row_store.insert_inventory(r=r, player_id=player_id, inventory_id=f"{player_id}-backpack")
        row_store.put_player_stats(r=r, player_id=player_id, stats={"current_hp": 20, "max_hp": 20, "strength": 3})

    for offset, item in enumerate(ITEMS):
        try:
            row_store.insert_catalog_item(
                r=r,
                item_name=item.name,
                item_description=item.description,
                item_category=item.category,
                item_rarity=item.rarity,
                item_base_value=item.base_value,
                is_city_key=item.category == "key",
                created_at=base + timedelta(hours=offset),
                item_id=item.item_id,
            )
        except ConflictError:
            logger.info("Item %r already seeded", item.name)

    row_store.put_inventory_line(r=r, inventory_id="demo-player-1-backpack", item_id="demo-item-sword", durability=90)
    row_store.put_inventory_line(r=r, inventory_id="demo-player-1-backpack", item_id="demo-item-potion", quantity=3)

    token = create_session(r=r, user_id=user_id)
    logger.info("Seeded demo data for %s", user_id)
    print(token)


if __name__ == "__main__":
    main()
