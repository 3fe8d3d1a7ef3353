"""HTTP client for the questbag API.

Translates the `{data} | {error}` envelope and HTTP statuses into return
values and `GatewayError` subclasses. Every response ETag is remembered
per resource path; conditional GETs send it and raise `NotModified` on a 304.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from questbag.api.models import AdventuresPage, CatalogItem, InventoriesPage, PlayersPage


logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A request failed; `str(e)` is a human-readable message."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(GatewayError):
    pass


class NotFoundError(GatewayError):
    pass


class OwnershipError(GatewayError):
    pass


class ConflictError(GatewayError):
    pass


class NetworkError(GatewayError):
    pass


class NotModified(Exception):
    """The server answered 304: the caller's copy is current."""


_ERROR_BY_STATUS: dict[int, type[GatewayError]] = {
    401: AuthError,
    403: OwnershipError,
    404: NotFoundError,
    409: ConflictError,
}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP error! status: {response.status_code}"


class GatewayClient:
    def __init__(self, *, http: httpx.AsyncClient, token: str | None = None) -> None:
        self._http = http
        self._token = token
        self._etags: dict[str, str] = {}

    @classmethod
    def connect(cls, *, base_url: str, token: str | None = None, timeout: float = 10.0) -> GatewayClient:
        return cls(http=httpx.AsyncClient(base_url=base_url, timeout=timeout), token=token)

    @property
    def token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token
        self._etags.clear()

    def forget_etag(self, path: str) -> None:
        self._etags.pop(path, None)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(self, method: str, path: str, *, conditional: bool = False, json: Any = None) -> Any:
        headers = self._headers()
        if conditional and path in self._etags:
            headers["If-None-Match"] = self._etags[path]

        try:
            response = await self._http.request(method, path, headers=headers, json=json)
        except httpx.HTTPError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        if response.status_code == 304:
            raise NotModified(path)

        if response.is_error:
            error_cls = _ERROR_BY_STATUS.get(response.status_code, GatewayError)
            raise error_cls(_error_message(response), status_code=response.status_code)

        etag = response.headers.get("ETag")
        if etag:
            self._etags[path] = etag

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError("Malformed response body", status_code=response.status_code) from e
        if not isinstance(body, dict):
            raise GatewayError("Malformed response body", status_code=response.status_code)
        if body.get("error"):
            raise GatewayError(str(body["error"]), status_code=response.status_code)
        return body.get("data")

    async def list_adventures(self) -> AdventuresPage:
        data = await self._request("GET", "/adventures")
        return _parse(AdventuresPage, data)

    async def list_players(self, adventure_id: str) -> PlayersPage:
        data = await self._request("GET", f"/adventures/{adventure_id}/players")
        return _parse(PlayersPage, data)

    async def list_inventories(self, player_id: str, *, conditional: bool = True) -> InventoriesPage:
        data = await self._request("GET", f"/player/{player_id}/inventories", conditional=conditional)
        return _parse(InventoriesPage, data)

    async def list_items(self, *, conditional: bool = True) -> list[CatalogItem]:
        data = await self._request("GET", "/items", conditional=conditional)
        if not isinstance(data, list):
            raise GatewayError("Malformed response body")
        return [_parse(CatalogItem, row) for row in data]

    async def create_item(self, *, item_name: str, item_description: str | None = None) -> CatalogItem:
        payload: dict[str, Any] = {"item_name": item_name}
        if item_description is not None:
            payload["item_description"] = item_description
        data = await self._request("POST", "/items", json=payload)
        return _parse(CatalogItem, data)

    async def sign_out(self) -> None:
        await self._request_no_content("DELETE", "/auth/session")

    async def _request_no_content(self, method: str, path: str) -> None:
        try:
            response = await self._http.request(method, path, headers=self._headers())
        except httpx.HTTPError as e:
            raise NetworkError(str(e) or type(e).__name__) from e
        if response.is_error:
            error_cls = _ERROR_BY_STATUS.get(response.status_code, GatewayError)
            raise error_cls(_error_message(response), status_code=response.status_code)


def _parse(model: Any, data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.debug("Unexpected %s payload: %s", model.__name__, data)
        raise GatewayError(f"Malformed {model.__name__} payload") from e
