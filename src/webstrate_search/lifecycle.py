"""Shutdown signalling between signal handlers and the HTTP server."""
import asyncio

import structlog

logger = structlog.get_logger()


class GracefulShutdown:
    """One-shot shutdown trigger.

    The first call to trigger() records why the process is stopping and
    wakes every waiter; later calls are ignored.
    """

    def __init__(self) -> None:
        self._reason: str | None = None
        self._event = asyncio.Event()

    @property
    def reason(self) -> str | None:
        """What caused the shutdown, e.g. the signal name."""
        return self._reason

    def trigger(self, reason: str = "requested") -> None:
        """Begin shutdown.

        Args:
            reason: Cause of the shutdown, logged once.
        """
        if self._reason is not None:
            return
        logger.info("shutdown_triggered", reason=reason)
        self._reason = reason
        self._event.set()

    async def wait_for_trigger(self) -> None:
        await self._event.wait()
