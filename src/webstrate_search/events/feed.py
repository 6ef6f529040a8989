"""MongoDB change stream reader producing typed change events."""

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import Any

import structlog
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from webstrate_search.events.normalizer import normalize_change
from webstrate_search.events.types import ChangeEvent

logger = structlog.get_logger()


class ChangeFeed:
    """Ordered feed of document changes from a MongoDB collection.

    Wraps a change stream opened with ``full_document="updateLookup"`` so
    updates carry the whole document. The stream is resumed from the last
    seen resume token after connection errors, so no change is skipped
    across reconnects.
    """

    def __init__(
        self,
        url: str,
        database: str,
        collection: str,
        retry_delay: float = 5.0,
    ) -> None:
        """Initialize change feed.

        Args:
            url: MongoDB connection URL (replica set required).
            database: Database holding the documents.
            collection: Collection to watch.
            retry_delay: Seconds to wait before reopening a failed stream.
        """
        self._url = url
        self._database = database
        self._collection = collection
        self._retry_delay = retry_delay
        self._client: AsyncMongoClient[Mapping[str, Any]] | None = None
        self._resume_token: Mapping[str, Any] | None = None

    def _get_client(self) -> AsyncMongoClient[Mapping[str, Any]]:
        if self._client is None:
            self._client = AsyncMongoClient(self._url)
        return self._client

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield normalized change events in arrival order.

        Runs until cancelled. Connection errors are logged and the stream is
        reopened after ``retry_delay`` seconds. A change that cannot be
        normalized is logged and skipped.

        Yields:
            Change events for the watched collection.
        """
        while True:
            collection = self._get_client()[self._database][self._collection]
            try:
                async with await collection.watch(
                    full_document="updateLookup",
                    resume_after=self._resume_token,
                ) as stream:
                    logger.info(
                        "change_feed_opened",
                        database=self._database,
                        collection=self._collection,
                        resumed=self._resume_token is not None,
                    )
                    async for change in stream:
                        self._resume_token = stream.resume_token
                        try:
                            event = normalize_change(change)
                        except Exception:
                            logger.exception(
                                "change_normalize_failed",
                                operation=change.get("operationType"),
                            )
                            continue
                        if event is not None:
                            yield event
            except PyMongoError as e:
                logger.error(
                    "change_feed_error",
                    error=str(e),
                    retry_in=self._retry_delay,
                )
                await asyncio.sleep(self._retry_delay)

    async def ping(self) -> bool:
        """Check that MongoDB answers.

        Returns:
            True if the server responded to a ping.
        """
        try:
            await self._get_client().admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning("mongodb_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the MongoDB client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("change_feed_closed")
