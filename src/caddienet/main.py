"""CaddieNet - conversational command assistant for golf rounds.

FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from caddienet import __version__
from caddienet.config import Settings, get_settings
from caddienet.models.schemas import ErrorDetail, ErrorResponse

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from redis.asyncio import Redis

    from caddienet.services.sessions import AssistantSessions


def setup_logging() -> None:
    """Route structlog and stdlib logging through the configured level."""
    settings = get_settings()
    level = logging.getLevelName(settings.log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
            if settings.env == "development"
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Pipeline modules log through the stdlib
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class AppState:
    """Process-wide handles shared by the routes."""

    def __init__(self) -> None:
        self.redis_client: Redis | None = None
        self.sessions: AssistantSessions | None = None


app_state = AppState()


async def _connect_redis(settings: Settings) -> Redis | None:
    """Connect to Redis, or None so preferences and history stay in memory."""
    logger = structlog.get_logger()
    try:
        import redis.asyncio as redis

        client = redis.from_url(settings.redis.url, encoding="utf-8", decode_responses=True)
        await client.ping()
    except Exception as e:
        logger.error("Redis unavailable, using in-memory stores", error=str(e))
        return None
    logger.info("Redis connected", url=settings.redis.url)
    return client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire the stores and sessions on startup; close clients on shutdown."""
    from caddienet.services.interaction_log import init_interaction_log
    from caddienet.services.llm.openai_client import get_openai_client
    from caddienet.services.preferences import init_preference_store
    from caddienet.services.sessions import init_sessions

    logger = structlog.get_logger()
    settings = get_settings()
    logger.info("Starting CaddieNet", version=__version__, env=settings.env)

    app_state.redis_client = await _connect_redis(settings)
    master_key = settings.master_key.get_secret_value() if settings.master_key else None
    preference_store = init_preference_store(
        redis_client=app_state.redis_client, master_key=master_key
    )
    interaction_log = await init_interaction_log(
        redis_client=app_state.redis_client,
        max_records=settings.assistant.max_logged_interactions,
    )
    app_state.sessions = init_sessions(
        preferences=preference_store, interaction_log=interaction_log
    )

    if not settings.shared_credential:
        logger.warning("OPENAI_API_KEY not set; only users with a personal key can use the assistant")

    yield

    logger.info("Shutting down CaddieNet")
    await app_state.sessions.shutdown()
    await get_openai_client().shutdown()
    if app_state.redis_client:
        await app_state.redis_client.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    from caddienet.api.routes import assistant, health, preferences

    setup_logging()
    settings = get_settings()

    app = FastAPI(
        title="CaddieNet",
        description="Conversational command assistant for golf rounds",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.env == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        # Never echo exception text; it may carry a credential
        structlog.get_logger().error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="INTERNAL_ERROR",
                    message="An unexpected error occurred",
                    details={"error": type(exc).__name__} if settings.debug else None,
                )
            ).model_dump(mode="json"),
        )

    app.include_router(health.router, tags=["Health"])
    app.include_router(assistant.router, prefix="/api/v1", tags=["Assistant"])
    app.include_router(preferences.router, prefix="/api/v1", tags=["Preferences"])
    return app


app = create_app()


def main() -> None:
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "caddienet.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.env == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
