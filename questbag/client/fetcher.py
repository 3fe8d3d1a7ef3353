"""Generic per-entity fetcher.

One `EntityFetcher` is created per entity type (adventures, players,
inventories, catalog items). It owns at most one in-flight request and
exposes `data` / `loading` / `error` to subscribers.

Rules, per instance:
  - a trigger while a request is in flight is dropped;
  - a trigger less than `min_interval` seconds after the last request start
    is dropped (no trailing request is scheduled);
  - changing the parent id cancels the in-flight request and always fetches
    for the new parent;
  - a cancelled request never touches state;
  - failures set `error` and keep the previous `data`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Generic, Protocol, TypeVar

from questbag.client.gateway import GatewayError, NotModified


logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

DEFAULT_MIN_FETCH_INTERVAL = 2.0


class Loader(Protocol[T_co]):
    def __call__(self, parent_id: str | None, *, conditional: bool) -> Awaitable[T_co]: ...


@dataclass(frozen=True, slots=True)
class FetchState(Generic[T]):
    data: T | None = None
    loading: bool = False
    error: str | None = None
    parent_id: str | None = None

    # Bumped every time `data` is replaced by a successful load.
    revision: int = 0


Listener = Callable[[FetchState[T]], None]


class EntityFetcher(Generic[T]):
    def __init__(
        self,
        *,
        name: str,
        load: Loader[T],
        parent_required: bool = True,
        min_interval: float = DEFAULT_MIN_FETCH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._load = load
        self._parent_required = parent_required
        self._min_interval = min_interval
        self._clock = clock

        self._state: FetchState[T] = FetchState()
        self._listeners: list[Listener[T]] = []

        self._task: asyncio.Task[None] | None = None
        self._generation = 0
        self._last_fetch_at: float | None = None

        self._auto_refresh_task: asyncio.Task[None] | None = None
        self._auto_refresh_interval: float | None = None
        self._visible = True
        self._closed = False

    # ---- observable state -------------------------------------------------

    @property
    def state(self) -> FetchState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def parent_id(self) -> str | None:
        return self._state.parent_id

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def auto_refresh_enabled(self) -> bool:
        return self._auto_refresh_interval is not None

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _update(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)  # type: ignore[arg-type]
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("%s listener failed", self.name)

    # ---- triggers ---------------------------------------------------------

    def start(self, parent_id: str | None = None) -> asyncio.Task[None] | None:
        """Initial fetch (mount)."""

        if parent_id is not None or self._parent_required:
            return self.set_parent(parent_id, force=True)
        return self._trigger(force=True)

    def set_parent(self, parent_id: str | None, *, force: bool = False) -> asyncio.Task[None] | None:
        if parent_id == self._state.parent_id and not force:
            return None

        self._cancel_in_flight()
        # Data and errors belong to the previous parent.
        self._update(parent_id=parent_id, data=None, error=None, loading=False)
        return self._trigger(force=True)

    def refresh(self) -> asyncio.Task[None] | None:
        return self._trigger(force=False)

    def clear(self) -> None:
        """Drop data and any in-flight fetch without starting a new one."""

        self._cancel_in_flight()
        self._update(data=None, error=None, loading=False)

    def _trigger(self, *, force: bool) -> asyncio.Task[None] | None:
        if self._closed:
            return None

        parent_id = self._state.parent_id
        if self._parent_required and parent_id is None:
            if self._state.data is not None or self._state.loading or self._state.error is not None:
                self._update(data=None, loading=False, error=None)
            return None

        if self.in_flight:
            logger.debug("%s: fetch already in progress, dropping trigger", self.name)
            return None

        now = self._clock()
        if not force and self._last_fetch_at is not None and now - self._last_fetch_at < self._min_interval:
            logger.debug("%s: fetch throttled (%.2fs since last)", self.name, now - self._last_fetch_at)
            return None

        self._last_fetch_at = now
        self._generation += 1
        generation = self._generation

        self._update(loading=True, error=None)
        self._task = asyncio.get_running_loop().create_task(
            self._run(parent_id, generation, conditional=self._state.data is not None),
            name=f"fetch:{self.name}:{parent_id}",
        )
        return self._task

    def _cancel_in_flight(self) -> None:
        self._generation += 1
        task = self._task
        self._task = None
        if task is not None and not task.done():
            logger.debug("%s: cancelling in-flight fetch", self.name)
            task.cancel()

    async def _run(self, parent_id: str | None, generation: int, *, conditional: bool) -> None:
        logger.debug("%s: fetching (parent=%s)", self.name, parent_id)
        try:
            result = await self._load(parent_id, conditional=conditional)
        except NotModified:
            if generation == self._generation:
                logger.debug("%s: not modified", self.name)
                self._update(loading=False)
        except GatewayError as e:
            if generation == self._generation:
                logger.warning("%s: fetch failed: %s", self.name, e)
                self._update(loading=False, error=str(e) or f"Failed to fetch {self.name}")
        except asyncio.CancelledError:
            logger.debug("%s: fetch aborted", self.name)
            raise
        except Exception as e:
            if generation == self._generation:
                logger.exception("%s: unexpected fetch failure", self.name)
                self._update(loading=False, error=str(e) or f"Failed to fetch {self.name}")
        else:
            if generation == self._generation:
                self._update(data=result, loading=False, error=None, revision=self._state.revision + 1)
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    async def wait(self) -> None:
        """Wait for the in-flight fetch, if any, to settle."""

        task = self._task
        if task is not None:
            await asyncio.wait([task])

    # ---- auto refresh -----------------------------------------------------

    def enable_auto_refresh(self, interval: float) -> None:
        self.disable_auto_refresh()
        self._auto_refresh_interval = interval
        self._auto_refresh_task = asyncio.get_running_loop().create_task(
            self._auto_refresh_loop(interval), name=f"auto-refresh:{self.name}"
        )

    def disable_auto_refresh(self) -> None:
        self._auto_refresh_interval = None
        task = self._auto_refresh_task
        self._auto_refresh_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _auto_refresh_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.refresh()

    def set_visible(self, visible: bool) -> asyncio.Task[None] | None:
        """Report host visibility; hidden -> visible refreshes when auto refresh is on."""

        became_visible = visible and not self._visible
        self._visible = visible
        if became_visible and self._auto_refresh_interval is not None:
            return self.refresh()
        return None

    # ---- teardown ---------------------------------------------------------

    def close(self) -> None:
        self._closed = True
        self.disable_auto_refresh()
        self._cancel_in_flight()
        self._listeners.clear()
