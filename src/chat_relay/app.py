from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_relay.api.middleware.access_log import AccessLogMiddleware
from chat_relay.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_relay.api.v1.routers import chats, health, messages, presence, ws
from chat_relay.application.exceptions import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ProtocolError,
    UnreachableTargetError,
    ValidationError,
)
from chat_relay.application.uow import UowFactory
from chat_relay.config import settings
from chat_relay.infrastructure.db.session import dispose_engine
from chat_relay.infrastructure.db.uow import open_uow
from chat_relay.services.realtime_hub import RealtimeHub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    logger.info("Realtime hub ready")
    yield
    logger.info("Shutting down with %d live connection(s)", len(app.state.hub.registry))
    await dispose_engine()


def create_app(uow_factory: UowFactory | None = None) -> FastAPI:
    app = FastAPI(
        title="Chat Relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = RealtimeHub(
        uow_factory or open_uow,
        ring_timeout=settings.CALL_RING_TIMEOUT_SECONDS,
        autojoin_chats=settings.WS_AUTOJOIN_CHATS,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(chats.router)
    app.include_router(messages.router)
    app.include_router(presence.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(UnreachableTargetError)
    async def _unreachable(_req: Request, exc: UnreachableTargetError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(AuthorizationError)
    async def _forbidden(_req: Request, exc: AuthorizationError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ProtocolError)
    async def _protocol(_req: Request, exc: ProtocolError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(PersistenceError)
    async def _persistence(_req: Request, _exc: PersistenceError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": "Server error"})
