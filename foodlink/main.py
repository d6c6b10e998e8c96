import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import InterfaceError, OperationalError

from foodlink.api.auth import router as auth_router
from foodlink.api.chat import router as chat_router
from foodlink.api.health import router as health_router
from foodlink.api.listings import router as listings_router
from foodlink.api.requests import router as requests_router
from foodlink.api.ws import router as ws_router
from foodlink.config import Settings, settings
from foodlink.database import Database
from foodlink.errors import FoodLinkError, StoreUnavailable

logger = logging.getLogger(__name__)


def _store_unavailable(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    error = StoreUnavailable("Service temporarily unavailable, please try again")
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


def create_app(
    app_settings: Settings | None = None,
    redis_factory: Callable[[], Any] | None = None,
) -> FastAPI:
    """Build the app. The database and Redis handles are opened in the lifespan and closed on shutdown."""
    config = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s")
        database = Database(config.DATABASE_URL, echo=config.DATABASE_ECHO)
        await database.create_all(reset=config.RESET_DB)
        redis_client = redis_factory() if redis_factory else aioredis.from_url(config.REDIS_URL)
        app.state.database = database
        app.state.redis = redis_client
        try:
            yield
        finally:
            await database.dispose()
            await redis_client.aclose()

    app = FastAPI(title="FoodLink", version="0.1.0", lifespan=lifespan)
    app.include_router(health_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")
    app.include_router(listings_router, prefix="/api")
    app.include_router(requests_router, prefix="/api")
    app.include_router(chat_router, prefix="/api")
    app.include_router(ws_router)

    @app.exception_handler(FoodLinkError)
    async def foodlink_error_handler(request: Request, exc: FoodLinkError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(OperationalError)
    async def db_operational_handler(request: Request, exc: OperationalError):
        return _store_unavailable(request, exc)

    @app.exception_handler(InterfaceError)
    async def db_interface_handler(request: Request, exc: InterfaceError):
        return _store_unavailable(request, exc)

    @app.exception_handler(RedisConnectionError)
    async def redis_handler(request: Request, exc: RedisConnectionError):
        return _store_unavailable(request, exc)

    @app.get("/api")
    def api_root():
        return {"message": "FoodLink API"}

    return app


app = create_app()
