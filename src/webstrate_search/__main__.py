"""Entry point for the search server."""

import asyncio
import contextlib
import signal
import sys

import structlog
import uvicorn
from pydantic import ValidationError

from webstrate_search.app import create_app
from webstrate_search.config import Settings
from webstrate_search.lifecycle import GracefulShutdown
from webstrate_search.logging import configure_logging

logger = structlog.get_logger()

EXIT_CONFIG_INVALID = 9


async def serve(settings: Settings) -> None:
    """Run uvicorn server with graceful shutdown support.

    Handles SIGTERM/SIGINT for clean shutdown, so buffered index writes
    are flushed by the application lifespan.

    Args:
        settings: Server configuration.
    """
    app = create_app(settings)
    shutdown = GracefulShutdown()

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level="warning",
        access_log=False,
        timeout_graceful_shutdown=int(settings.shutdown_timeout),
    )
    server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.trigger, sig.name)

    async def run_server() -> None:
        """Serve until stopped, then release the shutdown waiter."""
        try:
            await server.serve()
        finally:
            shutdown.trigger("server_exited")

    async def shutdown_server() -> None:
        """Wait for shutdown signal and stop server."""
        await shutdown.wait_for_trigger()
        server.should_exit = True

    await asyncio.gather(
        run_server(),
        shutdown_server(),
        return_exceptions=True,
    )
    logger.info("server_stopped", reason=shutdown.reason)


def load_settings() -> Settings:
    """Load settings, exiting the process if they are unusable.

    Returns:
        Validated settings.
    """
    try:
        return Settings()
    except ValidationError as e:
        configure_logging()
        logger.error(
            "config_invalid",
            errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ],
        )
        sys.exit(EXIT_CONFIG_INVALID)


def main() -> None:
    """Entry point for python -m webstrate_search."""
    settings = load_settings()
    configure_logging(debug=settings.debug)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(serve(settings))

    sys.exit(0)


if __name__ == "__main__":
    main()
