"""FastAPI application wiring for routes, error handlers, logging, and lifespan."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from keeperboard.api.errors import APIError, from_domain_error
from keeperboard.api.routes import router
from keeperboard.config import Settings
from keeperboard.models.schemas import ErrorBody, ErrorResponse
from keeperboard.services.errors import KeeperboardError, StoreUnavailable
from keeperboard.services.leaderboard import LeaderboardService
from keeperboard.services.retention import RetentionReaper
from keeperboard.services.versions import VersionResolver, utcnow
from keeperboard.storage.redis import RedisEpochStore, create_redis_client

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("redis").setLevel(logging.WARNING)


def _error_response(exc: APIError) -> JSONResponse:
    payload = ErrorResponse(
        error=ErrorBody(code=exc.code, message=exc.message, details=exc.details),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=payload.model_dump(exclude_none=True),
    )


def create_app(
    settings: Settings | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    settings = settings or Settings.load()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        redis_client = create_redis_client(settings.redis_url)
        store = RedisEpochStore(redis_client)
        reaper = RetentionReaper(
            store,
            retention=settings.retention,
            background=settings.reap_in_background,
        )
        resolver = VersionResolver(store, reaper, long_gap_periods=settings.long_gap_periods)
        app.state.redis = redis_client
        app.state.reaper = reaper
        app.state.leaderboard_service = LeaderboardService(
            redis_client,
            store,
            resolver,
            clock=clock or utcnow,
        )
        try:
            yield
        finally:
            await reaper.drain()
            await redis_client.aclose()

    app = FastAPI(title="Keeperboard API", version="1.0.0", lifespan=app_lifespan)

    @app.exception_handler(APIError)
    async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(KeeperboardError)
    async def domain_error_handler(_: Request, exc: KeeperboardError) -> JSONResponse:
        if isinstance(exc, StoreUnavailable):
            logger.error("Leaderboard store unavailable: %s", exc, exc_info=exc)
        return _error_response(from_domain_error(exc))

    @app.exception_handler(RedisError)
    async def redis_error_handler(_: Request, exc: RedisError) -> JSONResponse:
        logger.error("Redis command failed: %s", exc, exc_info=exc)
        return _error_response(from_domain_error(StoreUnavailable(str(exc))))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        payload = ErrorResponse(
            error=ErrorBody(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details={"errors": exc.errors()},
            ),
        )
        return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))

    app.include_router(router)
    return app


app = create_app()
