"""Change feed subscriber keeping the search index in sync."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from functools import partial

import structlog

from webstrate_search.events.throttler import Throttler
from webstrate_search.events.types import ChangeEvent, ChangeOperation
from webstrate_search.search.index import SearchIndex
from webstrate_search.search.transform import to_search_record

logger = structlog.get_logger()

IndexWrite = Callable[[ChangeEvent], Awaitable[None]]


class IndexSubscriber:
    """Routes change events to index writes.

    Inserts and deletes are written straight away; bursts of updates to the
    same document go through the throttler so only the latest version gets
    written. An insert also opens the document's cooldown window, so the
    edits that follow a new document are coalesced too.

    Writes run as tasks, so a slow index never holds up the feed. Writes
    for the same document are chained and reach the index in the order
    they were dispatched. A failed write is logged and the feed
    carries on.

    Attributes:
        in_flight: Number of documents with a pending index write.
    """

    def __init__(
        self,
        search_index: SearchIndex,
        throttler: Throttler,
        index_permissionless: bool = False,
    ) -> None:
        """Initialize subscriber.

        Args:
            search_index: Index receiving the writes.
            throttler: Throttler coalescing updates per document id.
            index_permissionless: Policy for documents without ``data-auth``.
        """
        self._index = search_index
        self._throttler = throttler
        self._index_permissionless = index_permissionless
        self._writes: dict[str, asyncio.Task[None]] = {}

    @property
    def in_flight(self) -> int:
        """Number of documents with a pending index write."""
        return len(self._writes)

    def dispatch(self, event: ChangeEvent) -> None:
        """Route a single change event.

        Args:
            event: Change event from the feed.
        """
        key = event.document_id
        logger.debug("change_received", operation=event.operation.value, document_id=key)

        if event.operation is ChangeOperation.UPDATE:
            self._throttler.schedule(key, self._submit, self._upsert, event)
            return

        # A buffered update must not resurrect or overwrite this change.
        if event.operation is ChangeOperation.INSERT:
            self._throttler.restart(key)
            self._submit(self._upsert, event)
        else:
            self._throttler.cancel(key)
            self._submit(self._delete, event)

    def _submit(self, write: IndexWrite, event: ChangeEvent) -> None:
        key = event.document_id
        previous = self._writes.get(key)
        task = asyncio.create_task(self._run_write(previous, write, event))
        self._writes[key] = task
        task.add_done_callback(partial(self._write_done, key))

    async def _run_write(
        self,
        previous: asyncio.Task[None] | None,
        write: IndexWrite,
        event: ChangeEvent,
    ) -> None:
        if previous is not None:
            await asyncio.wait([previous])

        try:
            await write(event)
        except Exception:
            logger.exception(
                "index_write_failed",
                document_id=event.document_id,
                operation=event.operation.value,
            )

    def _write_done(self, key: str, task: asyncio.Task[None]) -> None:
        if self._writes.get(key) is task:
            del self._writes[key]

    async def _upsert(self, event: ChangeEvent) -> None:
        record = to_search_record(
            event.document_id,
            event.document,
            event.ctime,
            event.mtime,
            index_permissionless=self._index_permissionless,
        )
        await self._index.upsert(record)

    async def _delete(self, event: ChangeEvent) -> None:
        await self._index.delete(event.document_id)

    async def run(self, events: AsyncIterator[ChangeEvent]) -> None:
        """Consume change events until the stream ends or the task is cancelled.

        Args:
            events: Ordered change events.
        """
        logger.info("index_subscriber_started")
        try:
            async for event in events:
                self.dispatch(event)
        except asyncio.CancelledError:
            logger.info("index_subscriber_stopped", in_flight=self.in_flight)
            raise

    async def drain(self) -> None:
        """Wait for every in-flight index write to finish."""
        while self._writes:
            await asyncio.wait(list(self._writes.values()))

    async def close(self) -> None:
        """Write buffered updates, stop the throttler and wait for writes."""
        flushed = self._throttler.flush()
        await self._throttler.stop()
        await self.drain()
        logger.info("index_subscriber_closed", flushed=flushed)
