"""FastAPI application factory and lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from webstrate_search.config import Settings
from webstrate_search.events import ChangeFeed, Throttler
from webstrate_search.middleware.cors import configure_cors
from webstrate_search.middleware.logging import RequestLoggingMiddleware
from webstrate_search.routes import health, search
from webstrate_search.search import IndexSubscriber, SearchIndex

logger = structlog.get_logger()

SESSION_COOKIE = "session"


def _log_feed_exit(task: asyncio.Task[None]) -> None:
    """Report a feed task that ended on its own."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("change_feed_stopped", error=str(error), exc_info=error)
    else:
        logger.warning("change_feed_ended")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events.

    Connects the search index and the change feed on startup and starts
    the subscriber that mirrors the feed into the index. On shutdown the
    feed is stopped first, then buffered updates are written out before
    the clients are closed.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    logger.info(
        "search_service_startup",
        host=settings.host,
        port=settings.port,
        index=settings.index_name,
        index_permissionless=settings.index_permissionless_documents,
    )

    search_index = SearchIndex(settings.elasticsearch_url, settings.index_name)
    if await search_index.ensure_index():
        logger.info("search_index_ready", created=True)

    change_feed = ChangeFeed(
        settings.mongodb_url,
        settings.mongodb_database,
        settings.mongodb_collection,
    )
    throttler = Throttler(settings.throttle_delay)
    throttler.start()
    subscriber = IndexSubscriber(
        search_index,
        throttler,
        index_permissionless=settings.index_permissionless_documents,
    )

    app.state.search_index = search_index
    app.state.change_feed = change_feed
    app.state.subscriber = subscriber

    feed_task = asyncio.create_task(subscriber.run(change_feed.events()))
    feed_task.add_done_callback(_log_feed_exit)

    try:
        yield
    finally:
        feed_task.cancel()
        await asyncio.wait([feed_task])
        try:
            await subscriber.close()
        finally:
            await change_feed.close()
            await search_index.close()
            logger.info("search_service_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Factory function to create configured FastAPI application.

    Args:
        settings: Configuration instance. Creates default if None.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Webstrate Search",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    # Starlette signed cookie carrying passport.user; see get_user_id.
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret,
        session_cookie=SESSION_COOKIE,
    )
    configure_cors(app, settings.cors_origins)

    app.include_router(health.router)
    app.include_router(search.router)

    return app
