"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan context manager runs on startup / shutdown.
  3. Routers are registered.
  4. Global exception handlers normalise unexpected errors.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app                       # production (single worker; per-user
                                           # turn ordering is in-process)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderbot.api.routes import webhook
from orderbot.conversation.handler import ConversationHandler
from orderbot.core.config import settings
from orderbot.core.logging import configure_logging, get_logger
from orderbot.db.session import AsyncSessionLocal, engine
from orderbot.models import Base  # Imports all models so metadata is populated
from orderbot.services.messaging_service import LineMessagingClient

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging
      - (Optionally) create tables
      - Build the messaging client and the conversation handler

    Shutdown:
      - Close the outbound HTTP client
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        debug=settings.DEBUG,
    )

    if settings.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables ensured")

    messenger = LineMessagingClient()
    if not messenger.enabled:
        logger.warning("LINE_CHANNEL_ACCESS_TOKEN not set, replies will not be sent")
    app.state.conversation_handler = ConversationHandler(
        session_factory=AsyncSessionLocal,
        messenger=messenger,
        item_vendor_fallback=settings.ITEM_VENDOR_FALLBACK,
    )

    yield

    logger.info("Shutting down, closing clients and disposing DB engine")
    await messenger.aclose()
    await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Conversational ordering backend: worlds with owners and "
            "employees, catalogs, and an order ledger behind a chat webhook."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(webhook.router)

    # ── Global Exception Handlers ─────────────────────────────────────────────

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], summary="Service health check")
    async def health() -> dict:
        return {"status": "ok", "app": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_application()
