from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from questbag.api.routes import router
from questbag.catalog_cache import CatalogCache
from questbag.settings import ServerSettings, load_env_file, server_settings_from_env

app = FastAPI(title="questbag", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)


def install_state(settings: ServerSettings) -> None:
    """(Re)build the process-wide objects hung off `app.state`."""

    app.state.settings = settings
    app.state.catalog_cache = CatalogCache(
        ttl_seconds=settings.catalog_ttl_seconds,
        swr_seconds=settings.catalog_swr_seconds,
    )


load_env_file()
install_state(server_settings_from_env())


@app.on_event("startup")
async def _startup() -> None:
    install_state(server_settings_from_env())


@app.on_event("shutdown")
async def _shutdown() -> None:
    await app.state.catalog_cache.close()


# Every failure leaves the API in the {"error": ..., "details": ...} envelope.
@app.exception_handler(StarletteHTTPException)
async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": str(exc.errors())})


@app.exception_handler(Exception)
async def _unexpected_error(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "questbag", "version": "0.1.0"}
