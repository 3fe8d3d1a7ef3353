from __future__ import annotations

from typing import NoReturn

import redis
from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse

from questbag import queries
from questbag.api.deps import CurrentUser, get_catalog_cache, get_current_user, get_redis, get_settings
from questbag.api.models import (
    AdventuresPage,
    CatalogItem,
    CreateItemRequest,
    CreatePlayerRequest,
    DataEnvelope,
    Player,
    PlayerDetails,
    PlayersPage,
    UpdatePlayerRequest,
)
from questbag.auth import revoke_session
from questbag.catalog_cache import CacheStatus, CatalogCache, etag_for
from questbag.errors import (
    AuthError,
    ConflictError,
    InvalidInputError,
    LimitExceededError,
    NotFoundError,
    OwnershipError,
    QuestbagError,
)
from questbag.settings import ServerSettings

router = APIRouter()


_STATUS_BY_ERROR: dict[type[QuestbagError], int] = {
    AuthError: status.HTTP_401_UNAUTHORIZED,
    OwnershipError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    LimitExceededError: status.HTTP_400_BAD_REQUEST,
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
}


def _raise_http(e: QuestbagError) -> NoReturn:
    code = _STATUS_BY_ERROR.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise HTTPException(status_code=code, detail=e.message) from e


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.delete("/auth/session", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out_route(
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
) -> Response:
    revoke_session(r=r, token=user.token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/adventures", response_model=DataEnvelope[AdventuresPage])
async def list_adventures_route(
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
) -> DataEnvelope[AdventuresPage]:
    return DataEnvelope[AdventuresPage](data=queries.list_adventures_for_user(r=r, user_id=user.user_id))


@router.get("/adventures/{adventure_id}/players", response_model=DataEnvelope[PlayersPage])
async def list_players_route(
    adventure_id: str,
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
) -> DataEnvelope[PlayersPage]:
    try:
        page = queries.list_players(r=r, user_id=user.user_id, adventure_id=adventure_id)
    except QuestbagError as e:
        _raise_http(e)
    return DataEnvelope[PlayersPage](data=page)


@router.post(
    "/adventures/{adventure_id}/players",
    response_model=DataEnvelope[Player],
    status_code=status.HTTP_201_CREATED,
)
async def create_player_route(
    adventure_id: str,
    payload: CreatePlayerRequest,
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
    settings: ServerSettings = Depends(get_settings),
) -> DataEnvelope[Player]:
    try:
        player = queries.create_player(
            r=r,
            user_id=user.user_id,
            adventure_id=adventure_id,
            payload=payload,
            max_players=settings.max_players_per_adventure,
        )
    except QuestbagError as e:
        _raise_http(e)
    return DataEnvelope[Player](data=player, message="Player created successfully")


@router.get("/player/{player_id}", response_model=DataEnvelope[PlayerDetails])
async def get_player_route(
    player_id: str,
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
) -> DataEnvelope[PlayerDetails]:
    try:
        details = queries.get_player_details(r=r, user_id=user.user_id, player_id=player_id)
    except QuestbagError as e:
        _raise_http(e)
    return DataEnvelope[PlayerDetails](data=details)


@router.patch("/player/{player_id}", response_model=DataEnvelope[PlayerDetails])
async def update_player_route(
    player_id: str,
    payload: UpdatePlayerRequest,
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
) -> DataEnvelope[PlayerDetails]:
    try:
        details = queries.update_player(r=r, user_id=user.user_id, player_id=player_id, payload=payload)
    except QuestbagError as e:
        _raise_http(e)
    return DataEnvelope[PlayerDetails](data=details, message="Player updated successfully")


@router.get("/player/{player_id}/inventories")
async def list_inventories_route(
    player_id: str,
    if_none_match: str | None = Header(default=None),
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
) -> Response:
    try:
        page = queries.list_player_inventories(r=r, user_id=user.user_id, player_id=player_id)
    except QuestbagError as e:
        _raise_http(e)

    body = {"data": page.model_dump(mode="json")}
    etag = etag_for(body["data"])
    headers = {
        "ETag": etag,
        "Cache-Control": "private, no-cache, no-store, must-revalidate",
        "Pragma": "no-cache",
        "Expires": "0",
        "X-Player-Id": player_id,
    }
    if if_none_match and if_none_match == etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)
    return JSONResponse(content=body, headers=headers)


@router.get("/items")
async def list_items_route(
    if_none_match: str | None = Header(default=None),
    _user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
    cache: CatalogCache = Depends(get_catalog_cache),
    settings: ServerSettings = Depends(get_settings),
) -> Response:
    try:
        result = await cache.lookup(
            loader=lambda: queries.load_catalog_items(r=r, limit=settings.catalog_limit),
            if_none_match=if_none_match,
        )
    except redis.RedisError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch items") from e

    if result.status == CacheStatus.not_modified:
        return Response(
            status_code=status.HTTP_304_NOT_MODIFIED,
            headers={"Cache-Control": cache.cache_control, "ETag": result.etag or ""},
        )

    headers = {"X-Cache": result.status.value, "X-Total-Count": str(len(result.items))}
    if result.status == CacheStatus.error_fallback:
        headers["Cache-Control"] = "no-cache"
    else:
        headers["Cache-Control"] = cache.cache_control
        headers["ETag"] = result.etag or ""
    if result.age_seconds is not None:
        headers["X-Cache-Age"] = str(int(result.age_seconds * 1000))

    body = {"data": [item.model_dump(mode="json") for item in result.items]}
    return JSONResponse(content=body, headers=headers)


@router.post("/items", response_model=DataEnvelope[CatalogItem], status_code=status.HTTP_201_CREATED)
async def create_item_route(
    payload: CreateItemRequest,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> DataEnvelope[CatalogItem]:
    try:
        item = queries.create_catalog_item(r=r, payload=payload)
    except QuestbagError as e:
        _raise_http(e)

    await cache.invalidate()
    response.headers["Cache-Control"] = "no-cache"
    return DataEnvelope[CatalogItem](data=item, message="Item created successfully")
