from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from questbag.api.models import CatalogItem
from questbag.client.fetcher import DEFAULT_MIN_FETCH_INTERVAL, EntityFetcher, FetchState
from questbag.client.gateway import GatewayClient, GatewayError


logger = logging.getLogger(__name__)

TENTATIVE_ID_PREFIX = "tentative-"


@dataclass(frozen=True, slots=True)
class _LocalItem:
    item: CatalogItem
    confirmed: bool


class ItemCatalog:
    """Shared item catalog with optimistic creation.

    Newly created items are shown immediately as tentative entries, then
    either replaced by the server's copy or rolled back. Local entries are
    listed first, ahead of the fetched catalog.
    """

    def __init__(
        self,
        *,
        gateway: GatewayClient,
        min_interval: float = DEFAULT_MIN_FETCH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._local: list[_LocalItem] = []
        self._create_error: str | None = None
        self._creating = 0
        self._seen_revision = 0

        self.fetcher: EntityFetcher[list[CatalogItem]] = EntityFetcher(
            name="items",
            load=self._load,
            parent_required=False,
            min_interval=min_interval,
            clock=clock,
        )
        self._unsubscribe = self.fetcher.subscribe(self._on_fetch)

    async def _load(self, _parent_id: str | None, *, conditional: bool) -> list[CatalogItem]:
        return await self._gateway.list_items(conditional=conditional)

    def _on_fetch(self, state: FetchState[list[CatalogItem]]) -> None:
        if state.data is None or state.revision == self._seen_revision:
            return
        self._seen_revision = state.revision
        # Confirmed items the server now lists no longer need a local copy.
        fetched = {item.item_id for item in state.data}
        self._local = [e for e in self._local if not (e.confirmed and e.item.item_id in fetched)]

    @property
    def items(self) -> list[CatalogItem]:
        local = [e.item for e in self._local]
        local_ids = {item.item_id for item in local}
        fetched = [item for item in self.fetcher.data or [] if item.item_id not in local_ids]
        return local + fetched

    @property
    def loading(self) -> bool:
        return self.fetcher.loading

    @property
    def error(self) -> str | None:
        return self._create_error or self.fetcher.error

    @property
    def is_creating(self) -> bool:
        return self._creating > 0

    def start(self) -> None:
        self.fetcher.start()

    def refresh(self) -> None:
        self.fetcher.refresh()

    async def create_item(self, name: str, description: str | None = None) -> bool:
        tentative = CatalogItem(
            item_id=f"{TENTATIVE_ID_PREFIX}{uuid.uuid4().hex}",
            item_name=name.strip(),
            item_description=description.strip() if description else None,
            created_at=datetime.now(UTC),
        )
        entry = _LocalItem(item=tentative, confirmed=False)
        self._local.insert(0, entry)
        self._create_error = None
        self._creating += 1

        try:
            created = await self._gateway.create_item(item_name=name, item_description=description)
        except GatewayError as e:
            logger.warning("Item creation rejected: %s", e)
            self._local = [x for x in self._local if x is not entry]
            self._create_error = str(e) or "Failed to create item"
            return False
        finally:
            self._creating -= 1

        self._local = [_LocalItem(item=created, confirmed=True) if x is entry else x for x in self._local]
        # The cached ETag describes a catalog without this item.
        self._gateway.forget_etag("/items")
        logger.info("Created item %s", created.item_id)
        return True

    def close(self) -> None:
        self._unsubscribe()
        self.fetcher.close()
