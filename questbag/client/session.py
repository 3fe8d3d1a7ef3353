from __future__ import annotations

import logging

import redis

from questbag.client.catalog import ItemCatalog
from questbag.client.gateway import AuthError, GatewayClient, GatewayError
from questbag.client.storage import SelectionStorage
from questbag.client.store import SelectionStore
from questbag.infra.redis_client import create_redis
from questbag.settings import ClientSettings


logger = logging.getLogger(__name__)


class TokenAuth:
    """Bearer-token authentication capability for the client."""

    def __init__(self, *, gateway: GatewayClient, user_id: str | None = None) -> None:
        self._gateway = gateway
        self._user_id = user_id if gateway.token else None

    def current_user(self) -> str | None:
        return self._user_id

    def sign_in(self, *, user_id: str, token: str) -> None:
        self._gateway.set_token(token)
        self._user_id = user_id

    async def sign_out(self) -> None:
        if self._gateway.token:
            try:
                await self._gateway.sign_out()
            except AuthError:
                logger.info("Session already expired on the server")
            except GatewayError as e:
                logger.warning("Server-side sign-out failed: %s", e)
        self._gateway.set_token(None)
        self._user_id = None


class ClientSession:
    """Everything one signed-in client needs, built once and closed together."""

    def __init__(
        self,
        *,
        gateway: GatewayClient,
        r: redis.Redis,
        settings: ClientSettings,
        user_id: str | None = None,
        profile: str = "default",
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.redis = r
        self.auth = TokenAuth(gateway=gateway, user_id=user_id)
        self.storage = SelectionStorage(r=r, profile=profile)
        self.store = SelectionStore(
            gateway=gateway,
            storage=self.storage,
            auth=self.auth,
            min_interval=settings.min_fetch_interval,
        )
        self.catalog = ItemCatalog(gateway=gateway, min_interval=settings.min_fetch_interval)

    @classmethod
    def connect(
        cls,
        settings: ClientSettings,
        *,
        token: str | None = None,
        user_id: str | None = None,
        profile: str = "default",
    ) -> ClientSession:
        return cls(
            gateway=GatewayClient.connect(base_url=settings.api_base_url, token=token),
            r=create_redis(settings.redis_url),
            settings=settings,
            user_id=user_id,
            profile=profile,
        )

    def start(self, *, auto_refresh: bool = False) -> None:
        seconds = self.settings.auto_refresh_seconds if auto_refresh else None
        self.store.start(auto_refresh_seconds=seconds)
        self.catalog.start()

    async def logout(self) -> None:
        await self.store.logout()

    async def aclose(self) -> None:
        self.store.close()
        self.catalog.close()
        await self.gateway.aclose()
        self.redis.close()
